"""OpenID Connect relying-party client.

High-level flow (per login)
---------------------------
1. `Client.auth_url(Options(nonce=..., state=...))` builds the redirect to the
   provider. Keep the nonce and max age: they are needed again in step 3.
2. The provider redirects back with an authorization code.
3. `Client.authenticate(code, nonce=..., max_age=...)`:
   - Exchanges the code at the token endpoint (Authlib)
   - Wraps the returned `id_token`, if any, as an Encoded `IdToken`
   - Verifies its signature against the provider key set (`decoder.py`)
   - Validates its claims (`validation.py`)
4. Optionally `Client.request_userinfo(token)` fetches the userinfo document.

Network calls are async and delegated to Authlib's httpx integration; no
retry, backoff or timeout policy is added here. Decoding and validation are
synchronous and never touch the network.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Mapping, Set
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from authlib.common.urls import add_params_to_uri
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from . import discovery
from .claims import Userinfo
from .decoder import decode_token
from .discovery import Discovered, ProviderConfig, get_json, require_https
from .errors import (
    DiscoveryError,
    MissingRefreshToken,
    NoUserinfoUrl,
    OAuth2Error,
    TransportError,
    UserinfoSubjectMismatch,
)
from .token import Bearer, Token
from .validation import ValidationContext, current_timestamp, validate_token

if TYPE_CHECKING:
    from .config import ClientSettings
    from .keyset import KeySet
    from .protocols import Clock, Provider
    from .token import IdToken

logger = logging.getLogger(__name__)


class Display(Enum):
    """How the provider should display its authentication UI."""

    PAGE = "page"
    POPUP = "popup"
    TOUCH = "touch"
    WAP = "wap"


class Prompt(Enum):
    """Whether the provider should prompt for re-authentication or consent."""

    NONE = "none"
    LOGIN = "login"
    CONSENT = "consent"
    SELECT_ACCOUNT = "select_account"


@dataclass(frozen=True, slots=True)
class Options:
    """Optional authentication request parameters.

    See https://openid.net/specs/openid-connect-basic-1_0.html#RequestParameters.

    Attributes:
        scope: Must contain "openid"; it is added when missing. Defaults to
            "openid" only. Check the provider's `scopes_supported`.
        state: Opaque value echoed back on the redirect.
        nonce: Value the ID Token must echo; pass it to `authenticate` too.
        max_age: Max authentication age; pass it to `authenticate` too.
    """

    scope: str | None = None
    state: str | None = None
    nonce: str | None = None
    display: Display | None = None
    prompt: Set[Prompt] | None = None
    max_age: timedelta | None = None
    ui_locales: str | None = None
    claims_locales: str | None = None
    id_token_hint: str | None = None
    login_hint: str | None = None
    acr_values: str | None = None


def new_http_client(
    client_id: str,
    client_secret: str,
    redirect_uri: str | None = None,
    *,
    credentials_in_body: bool = False,
    **kwargs: Any,
) -> AsyncOAuth2Client:
    """Create the Authlib client used for every provider request."""
    return AsyncOAuth2Client(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        token_endpoint_auth_method="client_secret_post" if credentials_in_body else "client_secret_basic",
        **kwargs,
    )


class Client:
    """OAuth 2.0 / OpenID Connect client.

    The key set is loaded once, at construction, and never refreshed. A
    provider that rotates its signing keys requires a new client.

    Example:
        ```python
        client = await Client.discover(
            client_id="my-client",
            client_secret="change-me",
            issuer="https://accounts.example.com/",
            redirect_uri="https://app.example.com/login-redirect",
        )

        url = client.auth_url(Options(nonce=nonce, scope="openid email"))
        # ... redirect, receive ?code=...
        token = await client.authenticate(code, nonce=nonce)
        claims = token.id_token.payload()
        ```

    Attributes:
        provider: Where authorization and token requests go.
        client_id: OAuth 2.0 client identifier.
        client_secret: OAuth 2.0 client secret.
        redirect_uri: Registered redirect URI, if any.
        http_client: Authlib httpx client used for all provider requests.
        keyset: Provider keys; None disables signature verification.
    """

    def __init__(
        self,
        provider: Provider,
        client_id: str,
        client_secret: str,
        redirect_uri: str | None = None,
        *,
        http_client: AsyncOAuth2Client | None = None,
        keyset: KeySet | None = None,
        issuer: str | None = None,
        clock: Clock = current_timestamp,
    ) -> None:
        self.provider = provider
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.http_client = http_client or new_http_client(
            client_id,
            client_secret,
            redirect_uri,
            credentials_in_body=provider.credentials_in_body,
        )
        self.keyset = keyset
        self._issuer = issuer
        self._clock = clock

    @classmethod
    async def discover(
        cls,
        client_id: str,
        client_secret: str,
        issuer: str,
        redirect_uri: str | None = None,
        *,
        http_client: AsyncOAuth2Client | None = None,
        clock: Clock = current_timestamp,
    ) -> Client:
        """Construct a client from an issuer URL via OpenID Connect Discovery.

        Fetches the provider configuration and then its key set.

        Raises:
            InsecureUrl, TransportError, DiscoveryError, MalformedKeySet
        """
        http_client = http_client or new_http_client(client_id, client_secret, redirect_uri)
        config = await discovery.discover(http_client, issuer)
        keyset = await discovery.fetch_jwks(http_client, config.jwks_uri)
        return cls(
            Discovered(config),
            client_id,
            client_secret,
            redirect_uri,
            http_client=http_client,
            keyset=keyset,
            clock=clock,
        )

    @classmethod
    async def from_settings(cls, settings: ClientSettings, **kwargs: Any) -> Client:
        return await cls.discover(
            settings.client_id,
            settings.client_secret,
            settings.issuer,
            settings.redirect_uri,
            **kwargs,
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def config(self) -> ProviderConfig:
        """The provider's discovery document.

        Raises:
            DiscoveryError: If the client was not built through discovery.
        """
        if isinstance(self.provider, Discovered):
            return self.provider.config
        raise DiscoveryError("Client was not constructed through discovery")

    @property
    def issuer(self) -> str:
        if self._issuer is not None:
            return self._issuer
        return self.config.issuer

    # ------------------------------------------------------------------
    # Authorization redirect
    # ------------------------------------------------------------------

    def auth_uri(self, scope: str | None = None, state: str | None = None) -> str:
        """Return an authorization endpoint URI to direct the user to.

        See RFC 6749, section 3.1.
        """
        params: list[tuple[str, str]] = [
            ("response_type", "code"),
            ("client_id", self.client_id),
        ]
        if self.redirect_uri is not None:
            params.append(("redirect_uri", self.redirect_uri))
        if scope is not None:
            params.append(("scope", scope))
        if state is not None:
            params.append(("state", state))
        return add_params_to_uri(self.provider.authorization_endpoint, params)

    def auth_url(self, options: Options | None = None) -> str:
        """Return the OpenID Connect authentication request URI.

        The scope always contains "openid". Keep `options.nonce` and
        `options.max_age`: `authenticate` needs them to validate the ID Token.
        """
        options = options or Options()
        if options.scope is None:
            scope = "openid"
        elif "openid" not in options.scope:
            scope = f"openid {options.scope}"
        else:
            scope = options.scope

        params: list[tuple[str, str]] = []
        if options.nonce is not None:
            params.append(("nonce", options.nonce))
        if options.display is not None:
            params.append(("display", options.display.value))
        if options.prompt is not None:
            params.append(("prompt", " ".join(sorted(p.value for p in options.prompt))))
        if options.max_age is not None:
            params.append(("max_age", str(int(options.max_age.total_seconds()))))
        for name in ("ui_locales", "claims_locales", "id_token_hint", "login_hint", "acr_values"):
            value = getattr(options, name)
            if value is not None:
                params.append((name, value))

        return add_params_to_uri(self.auth_uri(scope, options.state), params)

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def request_token(self, code: str) -> Bearer:
        """Exchange an authorization code for tokens (RFC 6749, section 4.1.3).

        Raises:
            OAuth2Error: The token endpoint answered with an error response.
            TransportError: Network failure or malformed response body.
        """
        kwargs: dict[str, Any] = {"grant_type": "authorization_code", "code": code}
        if self.redirect_uri is not None:
            kwargs["redirect_uri"] = self.redirect_uri
        return await self._token_request(
            self.http_client.fetch_token(self.provider.token_endpoint, **kwargs)
        )

    async def refresh_token(self, bearer: Bearer, scope: str | None = None) -> Bearer:
        """Refresh an access token (RFC 6749, section 6).

        The previous refresh token is kept when the response carries none.

        Raises:
            MissingRefreshToken: `bearer` has no refresh token.
            OAuth2Error, TransportError
        """
        if not bearer.refresh_token:
            raise MissingRefreshToken()

        kwargs: dict[str, Any] = {"refresh_token": bearer.refresh_token}
        if scope is not None:
            kwargs["scope"] = scope
        refreshed = await self._token_request(
            self.http_client.refresh_token(self.provider.token_endpoint, **kwargs)
        )
        if refreshed.refresh_token is None:
            refreshed = replace(refreshed, refresh_token=bearer.refresh_token)
        return refreshed

    async def ensure_token(self, bearer: Bearer) -> Bearer:
        """Return `bearer`, refreshed first if its access token has expired."""
        if bearer.expired(now=self._clock()):
            logger.debug("Access token expired; refreshing")
            return await self.refresh_token(bearer)
        return bearer

    async def _token_request(self, request: Awaitable[Mapping[str, Any]]) -> Bearer:
        # Authlib keeps each token response on the session. The session is
        # shared between callers, so it goes back to its previous token.
        previous = self.http_client.token
        try:
            response = await request
        except OAuthError as e:
            raise OAuth2Error(e.error, e.description, e.uri) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Token request failed: {e}") from e
        except ValueError as e:
            raise TransportError("Token response is not valid JSON") from e
        finally:
            self.http_client.token = previous

        try:
            return Bearer.from_response(response, now=self._clock())
        except (TypeError, ValueError) as e:
            raise TransportError(f"Token response is malformed: {e}") from e

    # ------------------------------------------------------------------
    # ID Token
    # ------------------------------------------------------------------

    async def authenticate(
        self,
        code: str,
        nonce: str | None = None,
        max_age: timedelta | None = None,
    ) -> Token:
        """Exchange `code`, then decode and validate the returned ID Token.

        `nonce` and `max_age` must be the values used in `auth_url`. A token
        response without an ID Token is not an error: the bearer is returned
        with `id_token=None`.

        Raises:
            OAuth2Error, TransportError: The code exchange failed.
            InvalidToken: The ID Token could not be verified.
            ClaimsValidationError: The ID Token is not acceptable.
        """
        bearer = await self.request_token(code)
        token = Token.from_bearer(bearer)
        if token.id_token is not None:
            self.decode_token(token.id_token)
            self.validate_token(token.id_token, nonce, max_age)
        return token

    def decode_token(self, token: IdToken) -> None:
        """Verify `token`'s signature against the provider key set, in place.

        Raises:
            EmptyKeySet: The key set is empty.
            MissingKeyId: The key set holds several keys and the token has no kid.
            UnknownKeyId: The token's kid is not in the key set.
            WrongKeyType: The token's alg does not match the key.
            UnsupportedKeyType: The selected key is an elliptic-curve key.
            InvalidSignature, MalformedToken: Verification failed.
        """
        decode_token(token, self.keyset)

    def validate_token(
        self,
        token: IdToken,
        nonce: str | None = None,
        max_age: timedelta | None = None,
        *,
        now: int | None = None,
    ) -> None:
        """Validate a decoded token's claims against this client.

        Raises:
            TokenNotDecoded: The token was never verified.
            ClaimsValidationError: See `validate_claims` for the ordered checks.
        """
        context = ValidationContext(
            client_id=self.client_id,
            issuer=self.issuer,
            now=self._clock() if now is None else now,
            nonce=nonce,
            max_age=max_age,
        )
        validate_token(token, context)

    # ------------------------------------------------------------------
    # Userinfo
    # ------------------------------------------------------------------

    async def request_userinfo(self, token: Token) -> Userinfo:
        """Fetch the userinfo document for `token` from the provider.

        Raises:
            NoUserinfoUrl: The provider has no userinfo endpoint.
            InsecureUrl: The userinfo endpoint is not https.
            TokenNotDecoded: `token` carries an ID Token that was never verified.
            TransportError: Network failure or malformed response.
            UserinfoSubjectMismatch: The userinfo `sub` differs from the ID Token `sub`.
        """
        url = self.config.userinfo_endpoint if isinstance(self.provider, Discovered) else None
        if url is None:
            raise NoUserinfoUrl()
        require_https(url)

        claims = token.id_token.payload() if token.id_token is not None else None
        document = await get_json(
            self.http_client,
            url,
            headers={"Authorization": f"Bearer {token.bearer.access_token}"},
        )
        info = Userinfo.from_response(document)

        if claims is not None and info.sub is not None and claims.sub != info.sub:
            raise UserinfoSubjectMismatch(expected=info.sub, actual=claims.sub)
        return info

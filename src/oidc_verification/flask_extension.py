"""Flask integration for ID Token verification.

Key Components:
- OIDCExtension: Decorator class protecting routes with a verified ID Token
- get_verified_id_claims: Utility verifying the ID token cookie of the current request

Security Model:
1. Extract the raw ID token from the request (cookie or header)
2. Verify its signature against the provider key set
3. Validate its claims (issuer, nonce, audience, azp, expiry, max age)
4. Store the verified claims in `flask.g.oidc` for route access
5. Convert auth errors to HTTP responses (401, or 502 for provider failures)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, abort, g, session

from .errors import AuthError
from .extractors import CookieExtractor
from .token import IdToken

if TYPE_CHECKING:
    from .claims import Claims
    from .client import Client
    from .protocols import Extractor, ViewFunc

logger = logging.getLogger(__name__)

_EXT_KEY: Final[str] = "oidc_extension"
"""Flask extensions registry key for OIDCExtension."""


class OIDCExtension:
    """
    Flask decorator glue for ID Token authentication.

    Responsibilities:
    - Extract the ID token from the request
    - Decode and validate it with a `Client`
    - Store verified claims in `flask.g.oidc`
    - Convert domain errors to HTTP responses (abort)

    Pattern:
        oidc = OIDCExtension()
        oidc.init_app(app, client=client)

    Usage:
        oidc = OIDCExtension(client)
        @app.get("/profile")
        @oidc.require(nonce_session_key="nonce")
        def profile(): ...
    """

    def __init__(
        self,
        client: Client | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        self._client: Client | None = client
        self._extractor: Extractor = extractor or CookieExtractor()

    def init_app(
        self,
        app: Flask,
        *,
        client: Client | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        """Register the extension on `app`, optionally replacing its client or extractor."""
        if client is not None:
            self._client = client
        if extractor is not None:
            self._extractor = extractor

        app.extensions[_EXT_KEY] = self

    def require(
        self,
        *,
        nonce_session_key: str | None = None,
        max_age: timedelta | None = None,
    ):
        """Decorator to protect Flask routes with a verified ID Token.

        Args:
            nonce_session_key: Session key holding the nonce sent in the
                authorization request. When None, the token must carry no nonce.
            max_age: Max authentication age to enforce, if any.

        Error mapping:
        - ``MissingToken``            -> HTTP 401 ("Missing token")
        - ``InvalidToken``            -> HTTP 401 ("Invalid token")
        - ``ClaimsValidationError``   -> HTTP 401 ("Invalid token claims" / "Expired token")
        - ``ClientError``             -> HTTP 502
        - Any other error             -> HTTP 401 ("Authentication failed")

        Side Effects:
            Writes the verified claims to ``flask.g.oidc`` before calling the view.
        """

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                nonce = session.get(nonce_session_key) if nonce_session_key else None
                try:
                    raw = self._extractor.extract()
                    g.oidc = verify_id_token(self._require_client(), raw, nonce=nonce, max_age=max_age)
                except AuthError as e:
                    logger.warning("Rejected ID token: %s", e)
                    abort(e.error_code, description=e.description)
                except Exception:
                    logger.exception("Unexpected error while verifying ID token")
                    abort(401, description="Authentication failed")

                return view(*args, **kwargs)

            return wrapper

        return decorator

    def _require_client(self) -> Client:
        if self._client is None:
            raise RuntimeError("OIDCExtension has no client; pass one to __init__ or init_app")
        return self._client


def verify_id_token(
    client: Client,
    raw: str,
    *,
    nonce: str | None = None,
    max_age: timedelta | None = None,
) -> Claims:
    """Decode and validate a raw ID token with `client` and return its claims."""
    token = IdToken(raw)
    client.decode_token(token)
    client.validate_token(token, nonce, max_age)
    return token.payload()


def get_verified_id_claims(
    client: Client,
    *,
    cookie_name: str = "id_token",
    nonce: str | None = None,
    max_age: timedelta | None = None,
) -> Claims:
    """
    Return verified ID-token claims from the current Flask request.

    - Extracts the ID token from a cookie (default "id_token")
    - Verifies its signature and validates its claims
    - Returns the claims, or aborts with the error's HTTP status
    """
    try:
        raw = CookieExtractor(cookie_name).extract()
        claims = verify_id_token(client, raw, nonce=nonce, max_age=max_age)
    except AuthError as e:
        abort(e.error_code, description=e.description)
    except Exception:
        abort(401, description="Authentication failed")
    return claims

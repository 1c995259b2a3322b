"""OpenID Connect Discovery.

This module implements the subset of OpenID Connect Discovery 1.0
(https://openid.net/specs/openid-connect-discovery-1_0.html) needed to build a
client: fetching the provider metadata and the provider's key set.

Both operations are async and run once, when the client is constructed. There
is no refresh: the key set lives as long as the client.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any
from urllib.parse import urlparse

import httpx

from .errors import DiscoveryError, InsecureUrl, TransportError
from .keyset import KeySet

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = ".well-known/openid-configuration"


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Provider metadata (OpenID Connect Discovery 1.0, section 3).

    Only the members this client uses are typed; everything else is kept in
    `extra`.
    """

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: str | None = None
    end_session_endpoint: str | None = None
    registration_endpoint: str | None = None
    scopes_supported: tuple[str, ...] = ()
    response_types_supported: tuple[str, ...] = ()
    id_token_signing_alg_values_supported: tuple[str, ...] = ()
    claims_supported: tuple[str, ...] = ()
    token_endpoint_auth_methods_supported: tuple[str, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> ProviderConfig:
        """Parse a discovery document.

        Raises:
            DiscoveryError: If a required member is missing.
            InsecureUrl: If an endpoint does not use https.
        """
        required = {}
        for name in ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri"):
            value = document.get(name)
            if not isinstance(value, str) or not value:
                raise DiscoveryError(f"Provider configuration missing '{name}'")
            required[name] = value

        for name in ("token_endpoint", "jwks_uri", "userinfo_endpoint"):
            url = document.get(name)
            if isinstance(url, str):
                require_https(url)

        known = {f.name for f in fields(cls)} - {"extra"}
        return cls(
            **required,
            userinfo_endpoint=_optional_str(document, "userinfo_endpoint"),
            end_session_endpoint=_optional_str(document, "end_session_endpoint"),
            registration_endpoint=_optional_str(document, "registration_endpoint"),
            scopes_supported=_str_tuple(document, "scopes_supported"),
            response_types_supported=_str_tuple(document, "response_types_supported"),
            id_token_signing_alg_values_supported=_str_tuple(
                document, "id_token_signing_alg_values_supported"
            ),
            claims_supported=_str_tuple(document, "claims_supported"),
            token_endpoint_auth_methods_supported=_str_tuple(
                document, "token_endpoint_auth_methods_supported"
            ),
            extra={k: v for k, v in document.items() if k not in known},
        )


@dataclass(frozen=True, slots=True)
class Discovered:
    """Provider backed by a discovery document."""

    config: ProviderConfig

    @property
    def authorization_endpoint(self) -> str:
        return self.config.authorization_endpoint

    @property
    def token_endpoint(self) -> str:
        return self.config.token_endpoint

    @property
    def credentials_in_body(self) -> bool:
        # client_secret_basic is mandatory for providers to support
        return False


@dataclass(frozen=True, slots=True)
class StaticProvider:
    """Provider configured by hand, for OAuth 2.0 servers without discovery."""

    authorization_endpoint: str
    token_endpoint: str
    credentials_in_body: bool = False


def issuer_url(issuer: str) -> str:
    """Normalize an issuer identifier to an https URL.

    A bare host name is given the https scheme; any other scheme is rejected.
    """
    url = urlparse(issuer)
    if not url.scheme:
        return f"https://{issuer}"
    require_https(issuer)
    return issuer


def require_https(url: str) -> None:
    if urlparse(url).scheme != "https":
        raise InsecureUrl(url)


def discovery_url(issuer: str) -> str:
    base = issuer_url(issuer)
    if not base.endswith("/"):
        base += "/"
    return base + WELL_KNOWN_PATH


async def discover(http_client: httpx.AsyncClient, issuer: str) -> ProviderConfig:
    """Fetch and parse the provider's discovery document.

    Raises:
        InsecureUrl: If the issuer is not an https URL.
        TransportError: On network failure or a non-JSON response.
        DiscoveryError: If the document lacks required members.
    """
    url = discovery_url(issuer)
    logger.debug("Fetching provider configuration from %s", url)
    document = await get_json(http_client, url)
    return ProviderConfig.from_document(document)


async def fetch_jwks(http_client: httpx.AsyncClient, jwks_uri: str) -> KeySet:
    """Fetch the provider's key set from `jwks_uri`.

    Raises:
        InsecureUrl: If `jwks_uri` is not an https URL.
        TransportError: On network failure or a non-JSON response.
        MalformedKeySet: If the document or one of its keys cannot be parsed.
    """
    require_https(jwks_uri)
    logger.debug("Fetching key set from %s", jwks_uri)
    keyset = KeySet.from_jwks(await get_json(http_client, jwks_uri))
    logger.info("Loaded %d provider key(s) from %s", len(keyset), jwks_uri)
    return keyset


async def get_json(http_client: httpx.AsyncClient, url: str, **kwargs: Any) -> Mapping[str, Any]:
    """GET `url` and return its JSON object body, normalizing failures to TransportError."""
    try:
        # auth=None stops authlib clients from attaching their own OAuth token
        response = await http_client.get(url, auth=None, **kwargs)
        response.raise_for_status()
        document = response.json()
    except httpx.HTTPError as e:
        raise TransportError(f"Request to {url} failed: {e}") from e
    except ValueError as e:
        raise TransportError(f"Response from {url} is not valid JSON") from e

    if not isinstance(document, Mapping):
        raise TransportError(f"Response from {url} is not a JSON object")
    return document


def _optional_str(document: Mapping[str, Any], name: str) -> str | None:
    value = document.get(name)
    return value if isinstance(value, str) else None


def _str_tuple(document: Mapping[str, Any], name: str) -> tuple[str, ...]:
    value = document.get(name)
    if not isinstance(value, list):
        return ()
    return tuple(v for v in value if isinstance(v, str))

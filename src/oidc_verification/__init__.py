"""
OpenID Connect relying-party client: ID Token verification and claims validation.

High-level flow (per login)
---------------------------
1. `Client.discover(...)` loads the provider configuration and key set once.
2. `Client.auth_url(Options(nonce=...))` redirects the user to the provider.
3. `Client.authenticate(code, nonce=...)`:
   - Exchanges the authorization code for tokens
   - Selects the verification key from the ID Token's unverified header
   - Cross-checks the header `alg` against the key (avoids algorithm confusion)
   - Verifies the signature (PyJWT)
   - Validates issuer, nonce, audience, authorized party, expiry and max age
4. On success: `token.id_token.payload()` returns trusted `Claims`.

Security notes
--------------
- Never trust claims until signature verification succeeds; `IdToken.payload()`
  refuses to return claims from an unverified token.
- A key is only ever used with its own algorithm family.
- Validation is fail-fast: the first violated rule is raised.
- The key set is never refreshed during the client's lifetime.

Example usage
-------------

.. code-block:: python

    from oidc_verification import Client, ClientSettings, Options

    client = await Client.from_settings(ClientSettings.from_env())

    url = client.auth_url(Options(nonce=nonce, scope="openid email"))
    ...
    token = await client.authenticate(code, nonce=nonce)
    claims = token.id_token.payload()
"""

# Claims
from .claims import Address, Claims, Profile, Userinfo

# Client
from .client import Client, Display, Options, Prompt

# Config
from .config import ClientSettings

# Decoder
from .decoder import TokenDecoder, decode_token

# Discovery
from .discovery import Discovered, ProviderConfig, StaticProvider, discover, fetch_jwks

# Errors
from .errors import (
    AuthError,
    AuthorizedPartyMismatch,
    ClaimMismatch,
    ClaimsValidationError,
    ClientError,
    DecodeError,
    DiscoveryError,
    EmptyKeySet,
    ExpiredToken,
    InsecureUrl,
    InvalidSignature,
    InvalidToken,
    IssuerMismatch,
    KeySelectionError,
    MalformedKeySet,
    MalformedToken,
    MaxAgeExceeded,
    MissingAudience,
    MissingAuthorizedParty,
    MissingAuthTime,
    MissingClaim,
    MissingKeyId,
    MissingNonce,
    MissingRefreshToken,
    MissingToken,
    NonceMismatch,
    NoUserinfoUrl,
    OAuth2Error,
    TokenExpired,
    TokenNotDecoded,
    TransportError,
    UnknownKeyId,
    UnsupportedKeyType,
    UserinfoError,
    UserinfoSubjectMismatch,
    WrongKeyType,
)

# Extractors
from .extractors import BearerExtractor, CookieExtractor

# Flask extension
from .flask_extension import OIDCExtension, get_verified_id_claims, verify_id_token

# Key selection
from .key_selector import select_key

# Key set
from .keyset import EllipticCurveKey, Key, KeySet, RSAKey, SymmetricKey

# Protocols
from .protocols import Clock, Extractor, Provider, ViewFunc

# Tokens
from .token import Bearer, Decoded, Encoded, IdToken, Token, TokenHeader

# Validation
from .validation import ValidationContext, current_timestamp, validate_claims, validate_token

__all__ = [
    # Errors
    "AuthError",
    "MissingToken",
    "InvalidToken",
    "KeySelectionError",
    "EmptyKeySet",
    "MissingKeyId",
    "UnknownKeyId",
    "WrongKeyType",
    "DecodeError",
    "MalformedToken",
    "InvalidSignature",
    "UnsupportedKeyType",
    "TokenNotDecoded",
    "ClaimsValidationError",
    "ClaimMismatch",
    "IssuerMismatch",
    "NonceMismatch",
    "AuthorizedPartyMismatch",
    "MissingClaim",
    "MissingNonce",
    "MissingAudience",
    "MissingAuthorizedParty",
    "MissingAuthTime",
    "ExpiredToken",
    "TokenExpired",
    "MaxAgeExceeded",
    "ClientError",
    "DiscoveryError",
    "MalformedKeySet",
    "InsecureUrl",
    "OAuth2Error",
    "TransportError",
    "MissingRefreshToken",
    "UserinfoError",
    "NoUserinfoUrl",
    "UserinfoSubjectMismatch",
    # Protocols
    "Clock",
    "Extractor",
    "Provider",
    "ViewFunc",
    # Key set
    "Key",
    "KeySet",
    "SymmetricKey",
    "RSAKey",
    "EllipticCurveKey",
    "select_key",
    # Tokens and claims
    "TokenHeader",
    "Encoded",
    "Decoded",
    "IdToken",
    "Bearer",
    "Token",
    "Claims",
    "Profile",
    "Address",
    "Userinfo",
    # Decoding and validation
    "TokenDecoder",
    "decode_token",
    "ValidationContext",
    "current_timestamp",
    "validate_claims",
    "validate_token",
    # Discovery
    "ProviderConfig",
    "Discovered",
    "StaticProvider",
    "discover",
    "fetch_jwks",
    # Client
    "Client",
    "Options",
    "Display",
    "Prompt",
    "ClientSettings",
    # Flask extension
    "OIDCExtension",
    "get_verified_id_claims",
    "verify_id_token",
    # Extractors
    "BearerExtractor",
    "CookieExtractor",
]

"""Authentication, verification and validation errors.

This module defines the exception hierarchy for ID Token processing. All errors
inherit from AuthError to allow catch-all error handling, and every error
carries the HTTP status (`error_code`) and a short, client-safe `description`
used by the Flask integration.

Hierarchy:
    AuthError
    ├── MissingToken
    ├── InvalidToken                    (token cannot be trusted)
    │   ├── KeySelectionError           (EmptyKeySet, MissingKeyId, UnknownKeyId, WrongKeyType)
    │   └── DecodeError                 (MalformedToken, InvalidSignature, UnsupportedKeyType,
    │                                    TokenNotDecoded)
    ├── ClaimsValidationError           (token is trusted but not acceptable)
    │   ├── ClaimMismatch               (IssuerMismatch, NonceMismatch, AuthorizedPartyMismatch)
    │   ├── MissingClaim                (MissingNonce, MissingAudience, MissingAuthorizedParty,
    │   │                                MissingAuthTime)
    │   └── ExpiredToken                (TokenExpired, MaxAgeExceeded)
    └── ClientError                     (provider / transport failures)

Security Note:
    Descriptions are intentionally generic. Expected/actual values are kept on
    the exception attributes for server-side diagnostics and are never part of
    `description`.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


class AuthError(Exception):
    """Base exception for all authentication failures.

    Application code can catch this single exception type to reject an
    authentication attempt generically.

    Attributes:
        error_code: HTTP status the Flask integration answers with.
        description: Client-safe message.
    """

    error_code: int = 401
    description: str = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.description)


class MissingToken(AuthError):  # noqa: N818
    """Raised when no ID token is found in the request.

    This should typically result in an HTTP 401 Unauthorized response.
    """

    description = "Missing token"


# ============================================================================
# Untrusted tokens: key selection and signature verification
# ============================================================================


class InvalidToken(AuthError):  # noqa: N818
    """Raised when a token is present but cannot be verified.

    Distinguish the subclasses for observability, but all of them should return
    401 to clients.
    """

    description = "Invalid token"


class KeySelectionError(InvalidToken):
    """Raised when no usable verification key can be picked for a token."""


class EmptyKeySet(KeySelectionError):  # noqa: N818
    """Raised when the provider's key set holds no keys at all."""

    def __init__(self) -> None:
        super().__init__("Key set is empty")


class MissingKeyId(KeySelectionError):  # noqa: N818
    """Raised when the key set holds several keys and the token header has no `kid`."""

    def __init__(self) -> None:
        super().__init__("Token header has no 'kid' but the key set holds several keys")


class UnknownKeyId(KeySelectionError):  # noqa: N818
    """Raised when the token's `kid` matches no key in the key set.

    Attributes:
        kid: The key identifier carried by the token header.
    """

    def __init__(self, kid: str) -> None:
        self.kid = kid
        super().__init__(f"No key with id '{kid}' in the key set")


class WrongKeyType(KeySelectionError):  # noqa: N818
    """Raised when the token's algorithm cannot be used with the selected key.

    This occurs when:
    - The key declares an algorithm different from the token header's `alg`
    - The key declares a non-signature algorithm or use
    - The key material belongs to a different algorithm family than `alg`
      (e.g. an RSA public key offered for an HMAC algorithm)

    Attributes:
        expected: What the key accepts (an algorithm or an algorithm family such
            as "HS256|HS384|HS512").
        actual: What the token (or the key's own metadata) declared.
    """

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Wrong key type: expected {expected}, got {actual}")


class DecodeError(InvalidToken):
    """Raised when a token's signature or structure cannot be verified."""


class MalformedToken(DecodeError):  # noqa: N818
    """Raised when the compact serialization, header or payload is corrupt."""


class InvalidSignature(DecodeError):  # noqa: N818
    """Raised when the signature does not verify against the selected key."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Signature verification failed")


class UnsupportedKeyType(DecodeError):  # noqa: N818
    """Raised when the selected key is of a type that cannot verify signatures yet.

    Elliptic-curve keys are accepted in key sets but never used for
    verification; a token that selects one is rejected with this error.

    Attributes:
        kty: The JWK key type of the selected key.
    """

    def __init__(self, kty: str) -> None:
        self.kty = kty
        super().__init__(f"Unsupported key type '{kty}'")


class TokenNotDecoded(DecodeError):  # noqa: N818
    """Raised when trusted claims are read from a token that was never verified."""

    def __init__(self) -> None:
        super().__init__("Token has not been verified")


# ============================================================================
# Trusted tokens: claims validation
# ============================================================================


class ClaimsValidationError(AuthError):
    """Raised when a verified token is not acceptable for this client."""

    description = "Invalid token claims"


class ClaimMismatch(ClaimsValidationError):
    """Raised when a claim is present but differs from the expected value.

    Attributes:
        claim: Name of the claim.
        expected: Value the relying party expected.
        actual: Value found in the token.
    """

    claim: str = ""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"'{self.claim}' mismatch: expected {expected!r}, got {actual!r}")


class IssuerMismatch(ClaimMismatch):
    claim = "iss"


class NonceMismatch(ClaimMismatch):
    claim = "nonce"


class AuthorizedPartyMismatch(ClaimMismatch):
    claim = "azp"


class MissingClaim(ClaimsValidationError):
    """Raised when a required claim is absent, or present where none was expected.

    Attributes:
        claim: Name of the claim.
    """

    claim: str = ""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or f"Missing '{self.claim}' claim")


class MissingNonce(MissingClaim):
    """Raised when exactly one of the expected nonce and the token nonce is present."""

    claim = "nonce"

    def __init__(self) -> None:
        super().__init__("Nonce must be present in both the request and the token, or in neither")


class MissingAudience(MissingClaim):
    """Raised when the client id is not among the token's audiences."""

    claim = "aud"

    def __init__(self) -> None:
        super().__init__("Client id is not among the token audiences")


class MissingAuthorizedParty(MissingClaim):
    """Raised when a multi-audience token carries no `azp` claim."""

    claim = "azp"


class MissingAuthTime(MissingClaim):
    """Raised when a max age was requested and the token carries no `auth_time`."""

    claim = "auth_time"


class ExpiredToken(ClaimsValidationError):  # noqa: N818
    """Raised when a token, or the authentication it records, is too old.

    Treat identically to InvalidToken from a security perspective. The
    distinction helps with metrics and debugging.
    """

    description = "Expired token"


class TokenExpired(ExpiredToken):
    """Raised when the current time is at or past the token's `exp` claim.

    Attributes:
        expires: The `exp` claim, in seconds since the epoch.
    """

    def __init__(self, expires: int) -> None:
        self.expires = expires
        super().__init__(f"Token expired at {expires}")

    @property
    def expires_at(self) -> datetime:
        """`expires` as an aware datetime.

        Raises:
            OverflowError, ValueError, OSError: If `expires` is outside the
                range `datetime` can represent.
        """
        return datetime.fromtimestamp(self.expires, tz=UTC)


class MaxAgeExceeded(ExpiredToken):
    """Raised when the end-user authenticated longer ago than the permitted max age.

    Attributes:
        age_seconds: Seconds elapsed since `auth_time`.
    """

    def __init__(self, age_seconds: int) -> None:
        self.age_seconds = age_seconds
        super().__init__(f"Authentication is {age_seconds}s old")

    @property
    def age(self) -> timedelta:
        """Elapsed time since `auth_time`, clamped to `timedelta.max`."""
        try:
            return timedelta(seconds=self.age_seconds)
        except OverflowError:
            return timedelta.max


# ============================================================================
# Provider collaborators
# ============================================================================


class ClientError(AuthError):
    """Raised when talking to the OpenID provider fails."""

    error_code = 502
    description = "Identity provider error"


class DiscoveryError(ClientError):
    """Raised when the provider metadata document is missing required members."""


class MalformedKeySet(DiscoveryError):
    """Raised when a JWKS document or one of its keys cannot be parsed."""


class InsecureUrl(ClientError):
    """Raised when a provider URL does not use the https scheme.

    Attributes:
        url: The rejected URL.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"URL must use the 'https' scheme: {url}")


class OAuth2Error(ClientError):
    """Raised when the token endpoint answers with an OAuth 2.0 error response.

    See RFC 6749, section 5.2.

    Attributes:
        error: The `error` code (e.g. "invalid_grant").
        error_description: Optional human-readable text from the provider.
        error_uri: Optional URI documenting the error.
    """

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        error_uri: str | None = None,
    ) -> None:
        self.error = error
        self.error_description = error_description
        self.error_uri = error_uri
        message = error if not error_description else f"{error}: {error_description}"
        super().__init__(message)


class TransportError(ClientError):
    """Raised on network failures and response bodies that are not valid JSON."""


class MissingRefreshToken(ClientError):
    """Raised when a refresh is requested for a bearer without a refresh token."""

    def __init__(self) -> None:
        super().__init__("Bearer token has no refresh_token")


class UserinfoError(ClientError):
    """Raised when the userinfo document cannot be obtained or trusted."""


class NoUserinfoUrl(UserinfoError):
    """Raised when the provider publishes no userinfo endpoint."""

    def __init__(self) -> None:
        super().__init__("Provider has no userinfo endpoint")


class UserinfoSubjectMismatch(UserinfoError):
    """Raised when the userinfo `sub` differs from the ID token `sub`.

    Attributes:
        expected: The userinfo `sub`.
        actual: The ID token `sub`.
    """

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Userinfo subject {expected!r} does not match token subject {actual!r}")

"""Two-state ID Token and the bearer token bundle returned by the token endpoint.

An `IdToken` is always in exactly one of two states:

- `Encoded`: the raw compact serialization. Its header can be read without
  trust (to pick a key); its payload cannot be read at all.
- `Decoded`: the signature has been verified; header and claims are trusted.

`IdToken.payload()` only returns claims from the `Decoded` state, so
unverified claims can never reach the application. The Encoded -> Decoded
transition is performed once by the decoder and is irreversible.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import jwt

from .claims import Claims
from .errors import MalformedToken, TokenNotDecoded


@dataclass(frozen=True, slots=True)
class TokenHeader:
    """JOSE header fields used for key selection."""

    alg: str
    kid: str | None = None
    typ: str | None = None

    @classmethod
    def from_mapping(cls, header: Mapping[str, Any]) -> TokenHeader:
        alg = header.get("alg")
        if not isinstance(alg, str) or not alg:
            raise MalformedToken("Token header missing 'alg'")
        kid = header.get("kid")
        if kid is not None and not isinstance(kid, str):
            raise MalformedToken("Token header 'kid' must be a string")
        typ = header.get("typ")
        return cls(alg=alg, kid=kid, typ=typ if isinstance(typ, str) else None)


@dataclass(frozen=True, slots=True)
class Encoded:
    """Unverified compact token."""

    raw: str

    def unverified_header(self) -> TokenHeader:
        """Read the header without verifying anything.

        Only use the result to decide *how* to verify the token.
        """
        try:
            header = jwt.get_unverified_header(self.raw)
        except jwt.PyJWTError as e:
            raise MalformedToken(f"Malformed token: {e}") from e
        return TokenHeader.from_mapping(header)


@dataclass(frozen=True, slots=True)
class Decoded:
    """Verified token."""

    header: TokenHeader
    claims: Claims


class IdToken:
    """An ID Token owned by a single authentication attempt.

    Example:
        ```python
        token = IdToken(raw)
        token.is_decoded        # False
        decoder.decode(token)   # verifies the signature
        token.payload().sub     # trusted claims
        ```
    """

    __slots__ = ("_state",)

    def __init__(self, raw: str) -> None:
        self._state: Encoded | Decoded = Encoded(raw)

    def __repr__(self) -> str:
        return f"IdToken({type(self._state).__name__})"

    @property
    def state(self) -> Encoded | Decoded:
        return self._state

    @property
    def is_decoded(self) -> bool:
        return isinstance(self._state, Decoded)

    def unverified_header(self) -> TokenHeader:
        match self._state:
            case Encoded() as encoded:
                return encoded.unverified_header()
            case Decoded(header=header):
                return header

    def header(self) -> TokenHeader:
        """Return the verified header.

        Raises:
            TokenNotDecoded: If the signature has not been verified.
        """
        if isinstance(self._state, Decoded):
            return self._state.header
        raise TokenNotDecoded()

    def payload(self) -> Claims:
        """Return the verified claims.

        Raises:
            TokenNotDecoded: If the signature has not been verified.
        """
        if isinstance(self._state, Decoded):
            return self._state.claims
        raise TokenNotDecoded()

    def mark_decoded(self, decoded: Decoded) -> None:
        """Move the token to the Decoded state. Called by the decoder only."""
        if not isinstance(self._state, Encoded):
            raise RuntimeError("IdToken is already decoded")
        self._state = decoded


@dataclass(frozen=True, slots=True)
class Bearer:
    """Token endpoint response (RFC 6749, section 5.1).

    Attributes:
        access_token: The access token.
        token_type: Usually "Bearer".
        refresh_token: Refresh token, if the provider issued one.
        scope: Granted scope, if returned.
        expires_at: Expiry of the access token, seconds since the epoch.
        id_token: Raw ID Token string, if returned.
    """

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    scope: str | None = None
    expires_at: int | None = None
    id_token: str | None = None

    @classmethod
    def from_response(cls, response: Mapping[str, Any], *, now: int | None = None) -> Bearer:
        """Parse a token endpoint response.

        `expires_in` is converted to an absolute `expires_at` relative to `now`
        (the host clock when omitted); an `expires_at` member is used as is.

        Raises:
            ValueError: If `access_token` is missing or not a string.
        """
        access_token = response.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response missing 'access_token'")

        expires_at = response.get("expires_at")
        expires_in = response.get("expires_in")
        if expires_at is None and expires_in is not None:
            issued = int(time.time()) if now is None else now
            expires_at = issued + int(expires_in)

        return cls(
            access_token=access_token,
            token_type=str(response.get("token_type") or "Bearer"),
            refresh_token=response.get("refresh_token"),
            scope=response.get("scope"),
            expires_at=int(expires_at) if expires_at is not None else None,
            id_token=response.get("id_token"),
        )

    def expired(self, *, now: int | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = int(time.time()) if now is None else now
        return current >= self.expires_at


@dataclass(slots=True)
class Token:
    """Access token bundle plus, when the provider returned one, its ID Token."""

    bearer: Bearer
    id_token: IdToken | None = None

    @classmethod
    def from_bearer(cls, bearer: Bearer) -> Token:
        id_token = IdToken(bearer.id_token) if bearer.id_token else None
        return cls(bearer=bearer, id_token=id_token)

"""Provider key set: an immutable snapshot of published verification keys.

Keys form a closed set of variants:

- SymmetricKey: shared secret bytes (JWK `kty: oct`)
- RSAKey: public modulus and exponent (JWK `kty: RSA`)
- EllipticCurveKey: curve parameters (JWK `kty: EC`), accepted as data but never
  usable for verification

Every dispatch site matches on `Key` exhaustively, so adding a variant forces an
explicit decision everywhere a key is used.

The key set is built once (usually from the provider's `jwks_uri`) and never
mutated afterwards, so a single instance can be shared by concurrent requests
without locking.
"""

from __future__ import annotations

import binascii
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from jwt.utils import base64url_decode, base64url_encode

from .errors import MalformedKeySet


@dataclass(frozen=True, slots=True)
class SymmetricKey:
    """HMAC shared secret."""

    secret: bytes
    kid: str | None = None
    alg: str | None = None
    use: str | None = None

    kty: ClassVar[str] = "oct"


@dataclass(frozen=True, slots=True)
class RSAKey:
    """RSA public key as big-endian modulus and exponent bytes."""

    n: bytes
    e: bytes
    kid: str | None = None
    alg: str | None = None
    use: str | None = None

    kty: ClassVar[str] = "RSA"

    def to_jwk(self) -> dict[str, str]:
        """Public JWK members in the form `jwt.algorithms.RSAAlgorithm.from_jwk` reads."""
        return {
            "kty": self.kty,
            "n": base64url_encode(self.n).decode("ascii"),
            "e": base64url_encode(self.e).decode("ascii"),
        }


@dataclass(frozen=True, slots=True)
class EllipticCurveKey:
    """Elliptic-curve public key. Parsed and carried, but not supported for verification."""

    crv: str
    x: bytes
    y: bytes | None = None
    kid: str | None = None
    alg: str | None = None
    use: str | None = None

    kty: ClassVar[str] = "EC"


Key = SymmetricKey | RSAKey | EllipticCurveKey
"""Closed union of the key variants a key set may contain."""


@dataclass(frozen=True, slots=True)
class KeySet:
    """Ordered, immutable collection of verification keys.

    Attributes:
        keys: Keys in the order the provider published them.

    Example:
        ```python
        keyset = KeySet.from_jwks(
            {"keys": [{"kty": "oct", "kid": "k1", "alg": "HS256", "k": "c2VjcmV0"}]}
        )
        keyset.find("k1")  # SymmetricKey(secret=b"secret", kid="k1", alg="HS256")
        ```
    """

    keys: tuple[Key, ...] = ()

    def __len__(self) -> int:
        return len(self.keys)

    def __iter__(self) -> Iterator[Key]:
        return iter(self.keys)

    def find(self, kid: str) -> Key | None:
        """Return the first key whose `kid` equals `kid`, or None."""
        for key in self.keys:
            if key.kid == kid:
                return key
        return None

    @classmethod
    def from_jwks(cls, document: Mapping[str, Any]) -> KeySet:
        """Build a key set from a JWKS document (RFC 7517, section 5).

        Args:
            document: Parsed JSON of the provider's `jwks_uri`.

        Raises:
            MalformedKeySet: If the document has no `keys` array, or a key has an
                unknown `kty` or missing/corrupt members.
        """
        entries = document.get("keys")
        if not isinstance(entries, list):
            raise MalformedKeySet("JWKS document missing required 'keys' array")
        return cls(tuple(key_from_jwk(entry) for entry in entries))


def key_from_jwk(jwk: Mapping[str, Any]) -> Key:
    """Convert a single JWK mapping into a `Key` variant."""
    if not isinstance(jwk, Mapping):
        raise MalformedKeySet("JWK entry must be a JSON object")

    common = {
        "kid": _optional_str(jwk, "kid"),
        "alg": _optional_str(jwk, "alg"),
        "use": _optional_str(jwk, "use"),
    }

    kty = jwk.get("kty")
    match kty:
        case "oct":
            return SymmetricKey(secret=_b64_member(jwk, "k"), **common)
        case "RSA":
            return RSAKey(n=_b64_member(jwk, "n"), e=_b64_member(jwk, "e"), **common)
        case "EC":
            crv = _optional_str(jwk, "crv")
            if crv is None:
                raise MalformedKeySet("EC key missing 'crv'")
            y = _b64_member(jwk, "y") if "y" in jwk else None
            return EllipticCurveKey(crv=crv, x=_b64_member(jwk, "x"), y=y, **common)
        case _:
            raise MalformedKeySet(f"Unsupported JWK key type {kty!r}")


def _optional_str(jwk: Mapping[str, Any], name: str) -> str | None:
    value = jwk.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedKeySet(f"JWK member '{name}' must be a string")
    return value


def _b64_member(jwk: Mapping[str, Any], name: str) -> bytes:
    value = jwk.get(name)
    if not isinstance(value, str) or not value:
        raise MalformedKeySet(f"JWK member '{name}' is missing")
    try:
        return base64url_decode(value)
    except (binascii.Error, ValueError) as e:
        raise MalformedKeySet(f"JWK member '{name}' is not valid base64url") from e

"""ID Token claims and userinfo documents.

`Claims` is only ever constructed from a payload whose signature has been
verified (see `decoder.py`). The registered claims used by validation are typed
and required where OpenID Connect Core 1.0, section 2 requires them; profile and
contact claims are carried for the application but never validated here.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from .errors import MalformedToken

_REGISTERED = frozenset(
    {"iss", "sub", "aud", "exp", "iat", "azp", "nonce", "auth_time", "at_hash", "c_hash", "acr", "amr"}
)


@dataclass(frozen=True, slots=True)
class Address:
    """Postal address claim (OpenID Connect Core 1.0, section 5.1.1)."""

    formatted: str | None = None
    street_address: str | None = None
    locality: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None

    @classmethod
    def from_claim(cls, value: Any) -> Address | None:
        if not isinstance(value, Mapping):
            return None
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in value.items() if k in names and isinstance(v, str)})


@dataclass(frozen=True, slots=True)
class Profile:
    """Standard profile and contact claims (OpenID Connect Core 1.0, section 5.1).

    Malformed values are dropped rather than rejected: these claims are
    informational and play no part in deciding whether a token is acceptable.
    """

    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    middle_name: str | None = None
    nickname: str | None = None
    preferred_username: str | None = None
    profile: str | None = None
    picture: str | None = None
    website: str | None = None
    email: str | None = None
    email_verified: bool = False
    gender: str | None = None
    birthdate: str | None = None
    zoneinfo: str | None = None
    locale: str | None = None
    phone_number: str | None = None
    phone_number_verified: bool = False
    address: Address | None = None
    updated_at: int | None = None

    @classmethod
    def from_claims(cls, payload: Mapping[str, Any]) -> Profile:
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = payload.get(f.name)
            if raw is None:
                continue
            if f.name in ("email_verified", "phone_number_verified"):
                if isinstance(raw, bool):
                    values[f.name] = raw
            elif f.name == "address":
                values[f.name] = Address.from_claim(raw)
            elif f.name == "updated_at":
                if _is_int(raw):
                    values[f.name] = raw
            elif isinstance(raw, str):
                values[f.name] = raw
        return cls(**values)


PROFILE_CLAIMS = frozenset(f.name for f in fields(Profile))


@dataclass(frozen=True, slots=True)
class Claims:
    """Trusted ID Token claims.

    Attributes:
        iss: Issuer identifier.
        sub: Subject identifier.
        aud: A single audience, or a tuple of audiences when the token carried
            an array.
        exp: Expiry, seconds since the epoch.
        iat: Issued-at, seconds since the epoch.
        azp: Authorized party, if any.
        nonce: Nonce echoed from the authorization request, if any.
        auth_time: Time the end-user authenticated, if any.
        profile: Profile and contact claims.
        extra: Every claim that is neither registered nor a profile claim.
    """

    iss: str
    sub: str
    aud: str | tuple[str, ...]
    exp: int
    iat: int | None = None
    azp: str | None = None
    nonce: str | None = None
    auth_time: int | None = None
    at_hash: str | None = None
    c_hash: str | None = None
    acr: str | None = None
    amr: tuple[str, ...] | None = None
    profile: Profile = field(default_factory=Profile)
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def audiences(self) -> tuple[str, ...]:
        if isinstance(self.aud, str):
            return (self.aud,)
        return self.aud

    @property
    def has_multiple_audiences(self) -> bool:
        return len(set(self.audiences)) > 1

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Claims:
        """Build claims from a verified JWT payload.

        Raises:
            MalformedToken: If a required claim is missing or a registered claim
                has the wrong JSON type.
        """
        if not isinstance(payload, Mapping):
            raise MalformedToken("Token payload must be a JSON object")

        aud = payload.get("aud")
        if isinstance(aud, list):
            if not aud or not all(isinstance(a, str) for a in aud):
                raise MalformedToken("Claim 'aud' must be a string or a non-empty array of strings")
            aud = tuple(aud)
        elif not isinstance(aud, str):
            raise MalformedToken("Claim 'aud' must be a string or a non-empty array of strings")

        amr = payload.get("amr")
        if amr is not None:
            if not isinstance(amr, list) or not all(isinstance(a, str) for a in amr):
                raise MalformedToken("Claim 'amr' must be an array of strings")
            amr = tuple(amr)

        return cls(
            iss=_required_str(payload, "iss"),
            sub=_required_str(payload, "sub"),
            aud=aud,
            exp=_required_int(payload, "exp"),
            iat=_optional_int(payload, "iat"),
            azp=_optional_str(payload, "azp"),
            nonce=_optional_str(payload, "nonce"),
            auth_time=_optional_int(payload, "auth_time"),
            at_hash=_optional_str(payload, "at_hash"),
            c_hash=_optional_str(payload, "c_hash"),
            acr=_optional_str(payload, "acr"),
            amr=amr,
            profile=Profile.from_claims(payload),
            extra={
                k: v for k, v in payload.items() if k not in _REGISTERED and k not in PROFILE_CLAIMS
            },
        )


@dataclass(frozen=True, slots=True)
class Userinfo:
    """Userinfo endpoint response (OpenID Connect Core 1.0, section 5.3.2)."""

    sub: str | None = None
    profile: Profile = field(default_factory=Profile)
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, document: Mapping[str, Any]) -> Userinfo:
        sub = document.get("sub")
        return cls(
            sub=sub if isinstance(sub, str) else None,
            profile=Profile.from_claims(document),
            extra={k: v for k, v in document.items() if k != "sub" and k not in PROFILE_CLAIMS},
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _required_str(payload: Mapping[str, Any], name: str) -> str:
    value = payload.get(name)
    if not isinstance(value, str):
        raise MalformedToken(f"Claim '{name}' is missing or not a string")
    return value


def _optional_str(payload: Mapping[str, Any], name: str) -> str | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedToken(f"Claim '{name}' must be a string")
    return value


def _required_int(payload: Mapping[str, Any], name: str) -> int:
    value = payload.get(name)
    if not _is_int(value):
        raise MalformedToken(f"Claim '{name}' is missing or not an integer timestamp")
    return value


def _optional_int(payload: Mapping[str, Any], name: str) -> int | None:
    value = payload.get(name)
    if value is None:
        return None
    if not _is_int(value):
        raise MalformedToken(f"Claim '{name}' must be an integer timestamp")
    return value

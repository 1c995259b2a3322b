"""Claims validation for verified ID Tokens.

`validate_claims` is a pure function of the claims and a `ValidationContext`.
Checks run in a fixed order and the first failing check wins:

1. Issuer           `iss` equals the provider issuer
2. Nonce            present on both sides and equal, or absent on both sides
3. Audience         the client id is one of `aud`
4. Authorized party `azp` required for multi-audience tokens; must be the client id
5. Expiry           `now < exp`
6. Max age          `now - auth_time < max_age` when a max age is requested

Time comparisons are boundary-inclusive: a token expiring exactly now is
expired, and an authentication exactly `max_age` old is too old.

The current time is an explicit input. Use `ValidationContext.at_current_time`
to read the host clock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Final

from .errors import (
    AuthorizedPartyMismatch,
    IssuerMismatch,
    MaxAgeExceeded,
    MissingAudience,
    MissingAuthorizedParty,
    MissingAuthTime,
    MissingNonce,
    NonceMismatch,
    TokenExpired,
)

if TYPE_CHECKING:
    from .claims import Claims
    from .token import IdToken

EARLIEST_PLAUSIBLE_TIME: Final[int] = 1504758600
"""2017-09-07T04:30:00Z. A host clock reading earlier than this is broken."""


def current_timestamp() -> int:
    """Read the host clock as whole seconds since the epoch.

    Raises:
        RuntimeError: If the clock reads earlier than EARLIEST_PLAUSIBLE_TIME.
            This is a deployment fault, not a property of any token.
    """
    now = int(time.time())
    if now < EARLIEST_PLAUSIBLE_TIME:
        raise RuntimeError(f"Host clock reads {now}, which is before this code was written")
    return now


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """What the relying party expects of an ID Token.

    Attributes:
        client_id: This client's OAuth 2.0 client identifier.
        issuer: The provider's issuer identifier (from discovery).
        nonce: The nonce sent in the authorization request, if any.
        max_age: The max age sent in the authorization request, if any.
        now: Current time, seconds since the epoch.
    """

    client_id: str
    issuer: str
    now: int
    nonce: str | None = None
    max_age: timedelta | None = None

    @classmethod
    def at_current_time(
        cls,
        client_id: str,
        issuer: str,
        nonce: str | None = None,
        max_age: timedelta | None = None,
    ) -> ValidationContext:
        return cls(
            client_id=client_id,
            issuer=issuer,
            now=current_timestamp(),
            nonce=nonce,
            max_age=max_age,
        )


def validate_claims(claims: Claims, context: ValidationContext) -> None:
    """Accept or reject verified claims. Returns None when the token is acceptable.

    Raises:
        IssuerMismatch, NonceMismatch, MissingNonce, MissingAudience,
        MissingAuthorizedParty, AuthorizedPartyMismatch, TokenExpired,
        MissingAuthTime, MaxAgeExceeded
    """
    if claims.iss != context.issuer:
        raise IssuerMismatch(expected=context.issuer, actual=claims.iss)

    if context.nonce is not None:
        if claims.nonce is None:
            raise MissingNonce()
        if claims.nonce != context.nonce:
            raise NonceMismatch(expected=context.nonce, actual=claims.nonce)
    elif claims.nonce is not None:
        raise MissingNonce()

    if context.client_id not in claims.audiences:
        raise MissingAudience()

    # OpenID Connect Core 1.0, section 3.1.3.7, steps 4 and 5
    if claims.has_multiple_audiences and claims.azp is None:
        raise MissingAuthorizedParty()
    if claims.azp is not None and claims.azp != context.client_id:
        raise AuthorizedPartyMismatch(expected=context.client_id, actual=claims.azp)

    if context.now >= claims.exp:
        raise TokenExpired(claims.exp)

    if context.max_age is not None:
        if claims.auth_time is None:
            raise MissingAuthTime()
        age_seconds = context.now - claims.auth_time
        if age_seconds >= context.max_age.total_seconds():
            raise MaxAgeExceeded(age_seconds)


def validate_token(token: IdToken, context: ValidationContext) -> None:
    """Validate the claims of a decoded token.

    Raises:
        TokenNotDecoded: If the token's signature has not been verified.
        ClaimsValidationError: See `validate_claims`.
    """
    validate_claims(token.payload(), context)

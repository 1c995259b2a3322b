"""Key selection and algorithm cross-checking.

Picks the verification key for an unverified token header and checks that the
key's own metadata agrees with the header's `alg`. This is purely inspective:
no cryptography runs here, and it runs before any signature bytes are touched.
Rejecting a mismatched algorithm at this point defeats algorithm-confusion
attacks, such as an RSA public key being reused as an HMAC secret.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from .errors import EmptyKeySet, MissingKeyId, UnknownKeyId, WrongKeyType
from .keyset import EllipticCurveKey, RSAKey, SymmetricKey

if TYPE_CHECKING:
    from .keyset import Key, KeySet
    from .token import TokenHeader

logger = logging.getLogger(__name__)

HMAC_ALGORITHMS: Final[tuple[str, ...]] = ("HS256", "HS384", "HS512")
RSA_ALGORITHMS: Final[tuple[str, ...]] = ("RS256", "RS384", "RS512")
RSA_PSS_ALGORITHMS: Final[tuple[str, ...]] = ("PS256", "PS384", "PS512")
EC_ALGORITHMS: Final[tuple[str, ...]] = ("ES256", "ES384", "ES512", "ES256K")
EDDSA_ALGORITHMS: Final[tuple[str, ...]] = ("EdDSA",)

SIGNATURE_ALGORITHMS: Final[frozenset[str]] = frozenset(
    HMAC_ALGORITHMS + RSA_ALGORITHMS + RSA_PSS_ALGORITHMS + EC_ALGORITHMS + EDDSA_ALGORITHMS
)
"""JWS algorithms (RFC 7518, section 3.1). `none` is not a member."""


def family_label(algorithms: tuple[str, ...]) -> str:
    """Render an algorithm family for diagnostics, e.g. "HS256|HS384|HS512"."""
    return "|".join(algorithms)


def key_family(key: Key) -> tuple[str, ...]:
    """Signature algorithms that the key's material can be used with."""
    match key:
        case SymmetricKey():
            return HMAC_ALGORITHMS
        case RSAKey():
            return RSA_ALGORITHMS
        case EllipticCurveKey():
            return EC_ALGORITHMS


def select_key(header: TokenHeader, keyset: KeySet) -> Key:
    """Return the key that must verify a token with `header`.

    Policy:
        - No keys: fail with EmptyKeySet.
        - Exactly one key: use it, whatever `kid` the header carries.
        - Several keys: the header must carry a `kid` that names one of them.

    The selected key's declared `use` and `alg`, when present, must allow a
    signature with the header's algorithm.

    Raises:
        EmptyKeySet, MissingKeyId, UnknownKeyId, WrongKeyType
    """
    if len(keyset) == 0:
        raise EmptyKeySet()

    if len(keyset) == 1:
        key = keyset.keys[0]
    else:
        if header.kid is None:
            raise MissingKeyId()
        found = keyset.find(header.kid)
        if found is None:
            raise UnknownKeyId(header.kid)
        key = found

    check_declared_algorithm(key, header.alg)
    logger.debug("Selected %s key kid=%s for alg=%s", key.kty, key.kid, header.alg)
    return key


def check_declared_algorithm(key: Key, alg: str) -> None:
    """Reject `alg` when it contradicts what the key says about itself.

    A key without a declared `alg` or `use` passes; the decoder still restricts
    it to its material's algorithm family.
    """
    if key.use is not None and key.use != "sig":
        raise WrongKeyType(expected="sig", actual=key.use)

    declared = key.alg
    if declared is None:
        return

    if declared not in SIGNATURE_ALGORITHMS:
        raise WrongKeyType(expected="signature algorithm", actual=declared)

    if declared != alg:
        family = key_family(key)
        if declared in family and alg not in family:
            raise WrongKeyType(expected=family_label(family), actual=alg)
        raise WrongKeyType(expected=declared, actual=alg)

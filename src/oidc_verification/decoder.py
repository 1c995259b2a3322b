"""ID Token signature verification using PyJWT.

The decoder moves an `IdToken` from Encoded to Decoded:

1. Already decoded tokens are returned as is (no re-verification).
2. Without a key set, verification is skipped and the token stays Encoded, so
   any later attempt to read its claims fails with TokenNotDecoded.
3. The key is selected from the unverified header (see `key_selector.py`).
4. The key variant decides which algorithms may be used with it.
5. PyJWT verifies the signature with exactly that algorithm.
6. The verified payload is parsed into `Claims`.

Claim semantics (issuer, audience, expiry, ...) are *not* checked here; that is
the validator's job. PyJWT is used only for JWS signature verification.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import jwt
from jwt import api_jws
from jwt.algorithms import RSAAlgorithm

from .claims import Claims
from .errors import InvalidSignature, MalformedToken, UnsupportedKeyType, WrongKeyType
from .key_selector import HMAC_ALGORITHMS, RSA_ALGORITHMS, family_label, select_key
from .keyset import EllipticCurveKey, RSAKey, SymmetricKey
from .token import Decoded

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

    from .keyset import Key, KeySet
    from .token import IdToken

logger = logging.getLogger(__name__)


class TokenDecoder:
    """Verifies ID Tokens against a provider key set.

    Thread Safety:
        The key set is immutable, so a single decoder can be shared between
        threads. Each `IdToken` must only be decoded by its owner.

    Example:
        ```python
        decoder = TokenDecoder(KeySet.from_jwks(jwks_document))

        token = IdToken(raw_id_token)
        try:
            decoder.decode(token)
        except InvalidToken:
            # Reject the authentication attempt
        claims = token.payload()
        ```

    Attributes:
        keyset: Provider keys, or None when no trust boundary is configured.
    """

    def __init__(self, keyset: KeySet | None) -> None:
        self.keyset = keyset

    def decode(self, token: IdToken) -> None:
        """Verify `token` in place.

        Raises:
            EmptyKeySet, MissingKeyId, UnknownKeyId, WrongKeyType: Key selection
                failed (see `select_key`).
            UnsupportedKeyType: The selected key is an elliptic-curve key.
            InvalidSignature: The signature does not verify.
            MalformedToken: The token or its payload is structurally invalid.
        """
        decode_token(token, self.keyset)


def decode_token(token: IdToken, keyset: KeySet | None) -> None:
    """Verify `token` against `keyset`, moving it to the Decoded state.

    The token is left untouched when any step fails.
    """
    state = token.state
    if isinstance(state, Decoded):
        return

    if keyset is None:
        logger.warning("No key set configured; ID token signature was not verified")
        return

    header = state.unverified_header()
    key = select_key(header, keyset)
    algorithm, verification_key = resolve_verification_key(key, header.alg)

    try:
        decoded = api_jws.decode_complete(state.raw, key=verification_key, algorithms=[algorithm])
    except jwt.InvalidSignatureError as e:
        raise InvalidSignature() from e
    except jwt.PyJWTError as e:
        raise MalformedToken(f"Token verification failed: {e}") from e

    try:
        payload = json.loads(decoded["payload"])
    except ValueError as e:
        raise MalformedToken("Token payload is not valid JSON") from e

    claims = Claims.from_payload(payload)
    token.mark_decoded(Decoded(header=header, claims=claims))
    logger.debug("Verified ID token for sub=%s iss=%s", claims.sub, claims.iss)


def resolve_verification_key(key: Key, alg: str) -> tuple[str, bytes | RSAPublicKey]:
    """Map a key variant and header algorithm to PyJWT verification inputs.

    Raises:
        WrongKeyType: `alg` is outside the key's algorithm family.
        UnsupportedKeyType: The key is an elliptic-curve key.
    """
    match key:
        case SymmetricKey(secret=secret):
            if alg not in HMAC_ALGORITHMS:
                raise WrongKeyType(expected=family_label(HMAC_ALGORITHMS), actual=alg)
            return alg, secret
        case RSAKey():
            if alg not in RSA_ALGORITHMS:
                raise WrongKeyType(expected=family_label(RSA_ALGORITHMS), actual=alg)
            try:
                public_key = RSAAlgorithm.from_jwk(key.to_jwk())
            except (jwt.InvalidKeyError, ValueError) as exc:
                raise MalformedToken("RSA key parameters are invalid") from exc
            return alg, public_key
        case EllipticCurveKey():
            raise UnsupportedKeyType(key.kty)

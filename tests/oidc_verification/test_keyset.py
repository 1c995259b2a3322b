import dataclasses

import pytest
from jwt.utils import base64url_encode

import oidc_verification as m


def _b64(data: bytes) -> str:
    return base64url_encode(data).decode("ascii")


def test_from_jwks_parses_every_key_variant():
    keyset = m.KeySet.from_jwks(
        {
            "keys": [
                {"kty": "oct", "kid": "k1", "alg": "HS256", "use": "sig", "k": _b64(b"secret")},
                {"kty": "RSA", "kid": "k2", "alg": "RS256", "n": _b64(b"\x01\x02"), "e": "AQAB"},
                {"kty": "EC", "kid": "k3", "crv": "P-256", "x": _b64(b"x"), "y": _b64(b"y")},
            ]
        }
    )

    assert len(keyset) == 3
    assert keyset.keys[0] == m.SymmetricKey(secret=b"secret", kid="k1", alg="HS256", use="sig")
    assert keyset.keys[1] == m.RSAKey(n=b"\x01\x02", e=b"\x01\x00\x01", kid="k2", alg="RS256")
    assert isinstance(keyset.keys[2], m.EllipticCurveKey)
    assert keyset.keys[2].crv == "P-256"


def test_find_returns_first_matching_kid():
    first = m.SymmetricKey(secret=b"a", kid="dup")
    second = m.SymmetricKey(secret=b"b", kid="dup")
    keyset = m.KeySet((first, second))

    assert keyset.find("dup") is first
    assert keyset.find("nope") is None


def test_keyset_is_immutable():
    keyset = m.KeySet((m.SymmetricKey(secret=b"a"),))

    with pytest.raises(dataclasses.FrozenInstanceError):
        keyset.keys = ()  # type: ignore[misc]


def test_empty_jwks_gives_empty_keyset():
    assert len(m.KeySet.from_jwks({"keys": []})) == 0


@pytest.mark.parametrize(
    "document",
    [
        {},
        {"keys": "not-a-list"},
        {"keys": [{"kty": "OKP", "crv": "Ed25519", "x": "AA"}]},
        {"keys": [{"kty": "oct"}]},
        {"keys": [{"kty": "RSA", "n": "AQAB"}]},
        {"keys": [{"kty": "oct", "k": "AA", "kid": 7}]},
    ],
)
def test_from_jwks_rejects_malformed_documents(document):
    with pytest.raises(m.MalformedKeySet):
        m.KeySet.from_jwks(document)

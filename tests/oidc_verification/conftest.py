import json
from typing import Any

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask
from jwt.utils import base64url_encode

import oidc_verification as m

NOW = 1_700_000_000
ISSUER = "https://issuer.example.com"
CLIENT_ID = "client1"
SECRET = b"0123456789abcdef0123456789abcdef"


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.secret_key = "test-secret-key"
    return app


@pytest.fixture
def make_claims():
    """
    Factory fixture returning a valid ID token payload.

    Usage in tests:
        payload = make_claims(nonce="n1", aud=["client1", "other"])
    """

    def _make(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "iss": ISSUER,
            "sub": "user-1",
            "aud": CLIENT_ID,
            "exp": NOW + 600,
            "iat": NOW - 10,
        }
        for name, value in overrides.items():
            if value is None:
                payload.pop(name, None)
            else:
                payload[name] = value
        return payload

    return _make


@pytest.fixture
def make_hs_token():
    """Factory fixture signing a payload with HMAC."""

    def _make(
        payload: dict[str, Any],
        *,
        kid: str | None = None,
        alg: str = "HS256",
        secret: bytes = SECRET,
    ) -> str:
        headers = {"kid": kid} if kid is not None else None
        return jwt.encode(payload, secret, algorithm=alg, headers=headers)

    return _make


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def make_rsa_key(rsa_private_key: rsa.RSAPrivateKey):
    """Factory fixture building an RSAKey from the session key pair's public half."""

    def _make(*, kid: str | None = None, alg: str | None = None) -> m.RSAKey:
        numbers = rsa_private_key.public_key().public_numbers()
        return m.RSAKey(
            n=numbers.n.to_bytes((numbers.n.bit_length() + 7) // 8, "big"),
            e=numbers.e.to_bytes((numbers.e.bit_length() + 7) // 8, "big"),
            kid=kid,
            alg=alg,
        )

    return _make


@pytest.fixture
def make_rs_token(rsa_private_key: rsa.RSAPrivateKey):
    """Factory fixture signing a payload with the session RSA key."""

    def _make(payload: dict[str, Any], *, kid: str | None = None, alg: str = "RS256") -> str:
        headers = {"kid": kid} if kid is not None else None
        return jwt.encode(payload, rsa_private_key, algorithm=alg, headers=headers)

    return _make


@pytest.fixture
def forge_token():
    """
    Factory fixture building a compact token with an arbitrary header and a
    garbage signature. Nothing is signed.
    """

    def _make(header: dict[str, Any], payload: dict[str, Any]) -> str:
        segments = [
            base64url_encode(json.dumps(header).encode("utf-8")),
            base64url_encode(json.dumps(payload).encode("utf-8")),
            base64url_encode(b"not-a-real-signature"),
        ]
        return b".".join(segments).decode("ascii")

    return _make


@pytest.fixture
def context():
    """Factory fixture for a ValidationContext matching make_claims() defaults."""

    def _make(**overrides: Any) -> m.ValidationContext:
        values: dict[str, Any] = {"client_id": CLIENT_ID, "issuer": ISSUER, "now": NOW}
        values.update(overrides)
        return m.ValidationContext(**values)

    return _make

import base64
from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

import oidc_verification as m
from conftest import CLIENT_ID, ISSUER, NOW, SECRET
from oidc_verification.client import new_http_client

CLIENT_SECRET = "s3cret"
REDIRECT_URI = "https://app.example.com/login-redirect"

CONFIGURATION = {
    "issuer": ISSUER,
    "authorization_endpoint": f"{ISSUER}/authorize",
    "token_endpoint": f"{ISSUER}/token",
    "jwks_uri": f"{ISSUER}/jwks",
    "userinfo_endpoint": f"{ISSUER}/userinfo",
}

JWKS = {
    "keys": [
        {
            "kty": "oct",
            "kid": "k1",
            "alg": "HS256",
            "k": base64.urlsafe_b64encode(SECRET).rstrip(b"=").decode("ascii"),
        }
    ]
}


class FakeProvider:
    """Serves a provider's HTTP endpoints through httpx.MockTransport and records requests."""

    def __init__(self) -> None:
        self.token_response: tuple[int, dict] = (200, {"access_token": "at", "token_type": "Bearer"})
        self.userinfo: dict = {"sub": "user-1", "email": "a@example.com"}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        match request.url.path:
            case "/.well-known/openid-configuration":
                return httpx.Response(200, json=CONFIGURATION)
            case "/jwks":
                return httpx.Response(200, json=JWKS)
            case "/token":
                status, body = self.token_response
                return httpx.Response(status, json=body)
            case "/userinfo":
                if request.headers.get("Authorization") != "Bearer at":
                    return httpx.Response(401)
                return httpx.Response(200, json=self.userinfo)
        return httpx.Response(404)

    def http_client(self, **kwargs):
        return new_http_client(
            CLIENT_ID,
            CLIENT_SECRET,
            REDIRECT_URI,
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )

    def form(self, index: int = -1) -> dict[str, list[str]]:
        return parse_qs(self.requests[index].content.decode("ascii"))


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(provider):
    return m.Client(
        m.Discovered(m.ProviderConfig.from_document(CONFIGURATION)),
        CLIENT_ID,
        CLIENT_SECRET,
        REDIRECT_URI,
        http_client=provider.http_client(),
        keyset=m.KeySet.from_jwks(JWKS),
        clock=lambda: NOW,
    )


def query(url: str) -> dict[str, list[str]]:
    return parse_qs(urlsplit(url).query)


class TestDiscover:
    @pytest.mark.asyncio
    async def test_discover_loads_configuration_and_keys(self, provider):
        client = await m.Client.discover(
            CLIENT_ID, CLIENT_SECRET, ISSUER, REDIRECT_URI, http_client=provider.http_client()
        )

        assert client.issuer == ISSUER
        assert client.config.jwks_uri == f"{ISSUER}/jwks"
        assert len(client.keyset) == 1
        assert [r.url.path for r in provider.requests] == ["/.well-known/openid-configuration", "/jwks"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_from_settings(self, provider):
        settings = m.ClientSettings(issuer=ISSUER, client_id=CLIENT_ID, client_secret=CLIENT_SECRET)

        async with await m.Client.from_settings(settings, http_client=provider.http_client()) as client:
            assert client.client_id == CLIENT_ID
            assert client.redirect_uri is None

    @pytest.mark.asyncio
    async def test_insecure_issuer(self, provider):
        with pytest.raises(m.InsecureUrl):
            await m.Client.discover(
                CLIENT_ID, CLIENT_SECRET, "http://issuer.example.com", http_client=provider.http_client()
            )


class TestStaticProvider:
    def test_config_requires_discovery(self):
        client = m.Client(
            m.StaticProvider(f"{ISSUER}/authorize", f"{ISSUER}/token"),
            CLIENT_ID,
            CLIENT_SECRET,
            issuer=ISSUER,
        )

        assert client.issuer == ISSUER
        with pytest.raises(m.DiscoveryError):
            _ = client.config

    @pytest.mark.asyncio
    async def test_userinfo_needs_discovered_endpoint(self):
        client = m.Client(m.StaticProvider(f"{ISSUER}/authorize", f"{ISSUER}/token"), CLIENT_ID, CLIENT_SECRET)

        with pytest.raises(m.NoUserinfoUrl):
            await client.request_userinfo(m.Token(m.Bearer(access_token="at")))

    @pytest.mark.asyncio
    async def test_credentials_in_body(self, provider):
        client = m.Client(
            m.StaticProvider(f"{ISSUER}/authorize", f"{ISSUER}/token", credentials_in_body=True),
            CLIENT_ID,
            CLIENT_SECRET,
            REDIRECT_URI,
            http_client=provider.http_client(credentials_in_body=True),
        )

        await client.request_token("code-1")

        form = provider.form()
        assert form["client_id"] == [CLIENT_ID]
        assert form["client_secret"] == [CLIENT_SECRET]
        assert "Authorization" not in provider.requests[-1].headers


class TestAuthUrl:
    def test_auth_uri(self, client):
        params = query(client.auth_uri(scope="openid", state="st"))

        assert params == {
            "response_type": ["code"],
            "client_id": [CLIENT_ID],
            "redirect_uri": [REDIRECT_URI],
            "scope": ["openid"],
            "state": ["st"],
        }

    def test_defaults_to_openid_scope(self, client):
        url = client.auth_url()

        assert url.startswith(f"{ISSUER}/authorize?")
        assert query(url)["scope"] == ["openid"]

    def test_prepends_openid_to_scope(self, client):
        assert query(client.auth_url(m.Options(scope="email profile")))["scope"] == ["openid email profile"]

    def test_keeps_scope_with_openid(self, client):
        assert query(client.auth_url(m.Options(scope="email openid")))["scope"] == ["email openid"]

    def test_all_options(self, client):
        options = m.Options(
            state="st",
            nonce="n1",
            display=m.Display.POPUP,
            prompt={m.Prompt.LOGIN, m.Prompt.CONSENT},
            max_age=timedelta(minutes=10),
            ui_locales="fr-CA fr",
            claims_locales="fr",
            id_token_hint="a.b.c",
            login_hint="ada@example.com",
            acr_values="urn:mace:incommon:iap:silver",
        )

        params = query(client.auth_url(options))

        assert params["state"] == ["st"]
        assert params["nonce"] == ["n1"]
        assert params["display"] == ["popup"]
        assert params["prompt"] == ["consent login"]
        assert params["max_age"] == ["600"]
        assert params["ui_locales"] == ["fr-CA fr"]
        assert params["claims_locales"] == ["fr"]
        assert params["id_token_hint"] == ["a.b.c"]
        assert params["login_hint"] == ["ada@example.com"]
        assert params["acr_values"] == ["urn:mace:incommon:iap:silver"]


class TestTokenEndpoint:
    @pytest.mark.asyncio
    async def test_request_token(self, client, provider):
        provider.token_response = (200, {"access_token": "at", "token_type": "Bearer", "refresh_token": "rt"})

        bearer = await client.request_token("code-1")

        assert bearer.access_token == "at"
        assert bearer.refresh_token == "rt"
        form = provider.form()
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["code-1"]
        assert form["redirect_uri"] == [REDIRECT_URI]
        assert provider.requests[-1].headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_oauth_error_response(self, client, provider):
        provider.token_response = (400, {"error": "invalid_grant", "error_description": "Code expired"})

        with pytest.raises(m.OAuth2Error) as exc:
            await client.request_token("code-1")

        assert exc.value.error == "invalid_grant"
        assert exc.value.error_description == "Code expired"

    @pytest.mark.asyncio
    async def test_response_without_access_token(self, client, provider):
        provider.token_response = (200, {"token_type": "Bearer"})

        with pytest.raises(m.TransportError):
            await client.request_token("code-1")

    @pytest.mark.asyncio
    async def test_refresh_keeps_previous_refresh_token(self, client, provider):
        provider.token_response = (200, {"access_token": "at2", "token_type": "Bearer"})

        bearer = await client.refresh_token(m.Bearer(access_token="at", refresh_token="rt"))

        assert bearer.access_token == "at2"
        assert bearer.refresh_token == "rt"
        form = provider.form()
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["rt"]

    @pytest.mark.asyncio
    async def test_refresh_with_rotated_refresh_token(self, client, provider):
        provider.token_response = (200, {"access_token": "at2", "refresh_token": "rt2"})

        bearer = await client.refresh_token(m.Bearer(access_token="at", refresh_token="rt"), scope="openid")

        assert bearer.refresh_token == "rt2"
        assert provider.form()["scope"] == ["openid"]

    @pytest.mark.asyncio
    async def test_refresh_leaves_no_token_on_session(self, client, provider):
        provider.token_response = (200, {"access_token": "at2", "refresh_token": "rt2"})

        await client.refresh_token(m.Bearer(access_token="at", refresh_token="rt"))

        assert client.http_client.token is None

    @pytest.mark.asyncio
    async def test_failed_exchange_leaves_no_token_on_session(self, client, provider):
        provider.token_response = (400, {"error": "invalid_grant"})

        with pytest.raises(m.OAuth2Error):
            await client.request_token("code-1")

        assert client.http_client.token is None

    @pytest.mark.asyncio
    async def test_refresh_without_refresh_token(self, client, provider):
        with pytest.raises(m.MissingRefreshToken):
            await client.refresh_token(m.Bearer(access_token="at"))

        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_ensure_token_keeps_live_token(self, client, provider):
        bearer = m.Bearer(access_token="at", refresh_token="rt", expires_at=NOW + 1)

        assert await client.ensure_token(bearer) is bearer
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_ensure_token_refreshes_expired_token(self, client, provider):
        provider.token_response = (200, {"access_token": "at2", "token_type": "Bearer"})
        bearer = m.Bearer(access_token="at", refresh_token="rt", expires_at=NOW)

        refreshed = await client.ensure_token(bearer)

        assert refreshed.access_token == "at2"


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_authenticate(self, client, provider, make_hs_token, make_claims):
        id_token = make_hs_token(make_claims(nonce="n1"), kid="k1")
        provider.token_response = (200, {"access_token": "at", "token_type": "Bearer", "id_token": id_token})

        token = await client.authenticate("code-1", nonce="n1")

        assert token.bearer.access_token == "at"
        assert token.id_token.payload().sub == "user-1"

    @pytest.mark.asyncio
    async def test_authenticate_without_id_token(self, client, provider):
        token = await client.authenticate("code-1")

        assert token.id_token is None

    @pytest.mark.asyncio
    async def test_authenticate_leaves_no_token_on_session(self, client, provider, make_hs_token, make_claims):
        id_token = make_hs_token(make_claims())
        provider.token_response = (200, {"access_token": "at", "refresh_token": "rt", "id_token": id_token})

        await client.authenticate("code-1")

        assert client.http_client.token is None

    @pytest.mark.asyncio
    async def test_authenticate_rejects_bad_nonce(self, client, provider, make_hs_token, make_claims):
        id_token = make_hs_token(make_claims(nonce="n2"))
        provider.token_response = (200, {"access_token": "at", "id_token": id_token})

        with pytest.raises(m.NonceMismatch):
            await client.authenticate("code-1", nonce="n1")

    @pytest.mark.asyncio
    async def test_authenticate_enforces_max_age(self, client, provider, make_hs_token, make_claims):
        id_token = make_hs_token(make_claims(auth_time=NOW - 120))
        provider.token_response = (200, {"access_token": "at", "id_token": id_token})

        with pytest.raises(m.MaxAgeExceeded):
            await client.authenticate("code-1", max_age=timedelta(minutes=1))

    @pytest.mark.asyncio
    async def test_authenticate_rejects_forged_signature(self, client, provider, make_hs_token, make_claims):
        id_token = make_hs_token(make_claims(), secret=b"z" * 32)
        provider.token_response = (200, {"access_token": "at", "id_token": id_token})

        with pytest.raises(m.InvalidSignature):
            await client.authenticate("code-1")

    def test_validate_token_uses_explicit_time(self, client, make_hs_token, make_claims):
        token = m.IdToken(make_hs_token(make_claims(exp=NOW + 10)))
        client.decode_token(token)

        client.validate_token(token, now=NOW + 9)
        with pytest.raises(m.TokenExpired):
            client.validate_token(token, now=NOW + 10)


class TestUserinfo:
    @pytest.fixture
    def token(self, client, make_hs_token, make_claims):
        id_token = m.IdToken(make_hs_token(make_claims()))
        client.decode_token(id_token)
        return m.Token(m.Bearer(access_token="at"), id_token)

    @pytest.mark.asyncio
    async def test_request_userinfo(self, client, provider, token):
        info = await client.request_userinfo(token)

        assert info.sub == "user-1"
        assert info.profile.email == "a@example.com"

    @pytest.mark.asyncio
    async def test_subject_mismatch(self, client, provider, token):
        provider.userinfo = {"sub": "someone-else"}

        with pytest.raises(m.UserinfoSubjectMismatch) as exc:
            await client.request_userinfo(token)

        assert (exc.value.expected, exc.value.actual) == ("someone-else", "user-1")

    @pytest.mark.asyncio
    async def test_requires_verified_id_token(self, client, make_hs_token, make_claims):
        token = m.Token(m.Bearer(access_token="at"), m.IdToken(make_hs_token(make_claims())))

        with pytest.raises(m.TokenNotDecoded):
            await client.request_userinfo(token)

    @pytest.mark.asyncio
    async def test_without_id_token(self, client):
        info = await client.request_userinfo(m.Token(m.Bearer(access_token="at")))

        assert info.sub == "user-1"

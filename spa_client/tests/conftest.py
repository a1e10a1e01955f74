"""
Shared fixtures for spa_client tests. Provider endpoints are served by an httpx MockTransport;
the session store is the in-memory store; time comes from a settable clock.
"""
from urllib.parse import parse_qs, urlencode

import httpx
import pytest

from spa_client.auth_service import AuthService
from spa_client.config import ProviderConfig
from spa_client.location import BrowserLocation
from spa_client.session_store import STATE_KEY, InMemorySessionStore

APP_ORIGIN = "https://app.example"
REALM_URL = "https://idp.example/realms/oneid/protocol/openid-connect"


class FakeProvider:
    """Answers token, userinfo and revoke requests; records every request it sees."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body = {
            "access_token": "at-1",
            "refresh_token": "rt-1",
            "id_token": "idtok123",
            "token_type": "Bearer",
            "expires_in": 300,
            "scope": "openid email profile",
        }
        self.refresh_status = 200
        self.refresh_body = {
            "access_token": "at-2",
            "refresh_token": "rt-2",
            "token_type": "Bearer",
            "expires_in": 300,
            "scope": "openid email profile",
        }
        self.userinfo_status = 200
        self.userinfo_body = {
            "sub": "user-42",
            "preferred_username": "alice",
            "email": "alice@example.com",
            "email_verified": True,
            "name": "Alice Doe",
            "given_name": "Alice",
            "family_name": "Doe",
        }
        self.revoke_status = 200
        self.revoke_error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/token"):
            if form_of(request)["grant_type"] == "authorization_code":
                return httpx.Response(self.token_status, json=self.token_body)
            return httpx.Response(self.refresh_status, json=self.refresh_body)
        if path.endswith("/userinfo"):
            return httpx.Response(self.userinfo_status, json=self.userinfo_body)
        if path.endswith("/revoke"):
            if self.revoke_error is not None:
                raise self.revoke_error
            return httpx.Response(self.revoke_status)
        return httpx.Response(404)

    def calls(self, endpoint: str, grant_type: str | None = None) -> list[httpx.Request]:
        found = [r for r in self.requests if r.url.path.endswith(f"/{endpoint}")]
        if grant_type is not None:
            found = [r for r in found if form_of(r).get("grant_type") == grant_type]
        return found


class Clock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def form_of(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def deliver_callback(location: BrowserLocation, **params: str) -> None:
    """Point the tab at the callback URL carrying the given query params."""
    location.load(f"{APP_ORIGIN}/callback?{urlencode(params)}")


def start_login(auth: AuthService) -> str:
    """Run initiate_login and return the persisted state."""
    auth.initiate_login()
    auth.location.take_navigation()
    return auth.store.get(STATE_KEY)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def config():
    return ProviderConfig(
        issuer="https://idp.example",
        realm="oneid",
        client_id="react-client",
        redirect_uri=f"{APP_ORIGIN}/callback",
        scope="openid email profile",
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def location():
    return BrowserLocation(f"{APP_ORIGIN}/")


@pytest.fixture
def http_client(provider):
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))


@pytest.fixture
def auth(config, store, location, http_client, clock):
    return AuthService(config, store, location, http_client, clock=clock)

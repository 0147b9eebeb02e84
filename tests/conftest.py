"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest

from chutes_auth.config import OAuthConfig, load_settings
from chutes_auth.flow import AuthFlowManager
from chutes_auth.idp_client import IdpClient
from chutes_auth.state.memory import MemorySessionStore


IDP_BASE_URL = "https://idp.test"
REDIRECT_URI = "http://localhost:3000/api/auth/chutes/callback"


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIdp:
    """IDP double served through ``httpx.MockTransport``.

    Records every request so tests can assert how many token calls
    were made. Responses are ``(status, body)`` pairs where ``body`` is
    JSON-serializable or a raw string, or an exception to raise.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_response: Any = (
            200,
            {
                "access_token": "tok123",
                "refresh_token": "rt-1",
                "expires_in": 120,
                "token_type": "Bearer",
            },
        )
        self.userinfo_response: Any = (
            200,
            {"sub": "user-1", "username": "alice", "email": "alice@example.com"},
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/idp/token":
            reply = self.token_response
        elif request.url.path == "/idp/userinfo":
            reply = self.userinfo_response
        else:
            return httpx.Response(404, json={"error": "not_found"})

        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/idp/token"]

    @property
    def userinfo_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/idp/userinfo"]

    @staticmethod
    def form(request: httpx.Request) -> dict[str, str]:
        """Decode a form-encoded request body."""
        return dict(parse_qsl(request.content.decode("utf-8")))


@pytest.fixture
def clock() -> FakeClock:
    """A fake wall clock."""
    return FakeClock()


@pytest.fixture
def fake_idp() -> FakeIdp:
    """A request-counting IDP double."""
    return FakeIdp()


@pytest.fixture
def idp_client(fake_idp: FakeIdp) -> IdpClient:
    """IdpClient talking to the fake IDP."""
    return IdpClient(http_client=httpx.AsyncClient(transport=fake_idp.transport()))


@pytest.fixture
def oauth_config() -> OAuthConfig:
    """Resolved configuration for a test client."""
    return OAuthConfig(
        idp_base_url=IDP_BASE_URL,
        client_id="cid_test",
        client_secret="csc_test_secret",
        redirect_uri=REDIRECT_URI,
        scopes=("openid", "profile", "chutes:invoke"),
    )


@pytest.fixture
def store() -> MemorySessionStore:
    """A fresh in-memory session store."""
    return MemorySessionStore()


@pytest.fixture
def flow(idp_client: IdpClient, clock: FakeClock) -> AuthFlowManager:
    """Flow manager wired to the fake IDP and fake clock."""
    return AuthFlowManager(idp_client, clock=clock)


@pytest.fixture
def auth_env() -> dict[str, str]:
    """Complete environment for a configured client."""
    return {
        "CHUTES_AUTH__CLIENT_ID": "cid_test",
        "CHUTES_AUTH__CLIENT_SECRET": "csc_test_secret",
        "CHUTES_AUTH__IDP_BASE_URL": IDP_BASE_URL,
    }


@pytest.fixture
def settings(auth_env: dict[str, str]):
    """Settings built only from ``auth_env``."""
    return load_settings(auth_env)

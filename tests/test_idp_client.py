"""Tests for the IDP client against an httpx.MockTransport double."""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from chutes_auth.exceptions import IdpConnectionError, TokenExchangeError, TokenRefreshError
from chutes_auth.idp_client import IdpClient


class TestBuildAuthorizeUrl:
    """Tests for authorize URL construction."""

    def test_query_parameters(self, idp_client, oauth_config, fake_idp) -> None:
        """All required parameters are present and encoded."""
        url = idp_client.build_authorize_url("state-1", "challenge-1", oauth_config)
        parsed = urlparse(url)
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == oauth_config.authorize_endpoint
        assert params == {
            "response_type": "code",
            "client_id": "cid_test",
            "redirect_uri": oauth_config.redirect_uri,
            "scope": "openid profile chutes:invoke",
            "state": "state-1",
            "code_challenge": "challenge-1",
            "code_challenge_method": "S256",
        }
        assert fake_idp.requests == []

    def test_secret_not_in_url(self, idp_client, oauth_config) -> None:
        """The client secret never goes to the browser."""
        url = idp_client.build_authorize_url("s", "c", oauth_config)
        assert oauth_config.client_secret not in url


class TestExchangeCode:
    """Tests for the authorization_code grant."""

    @pytest.mark.asyncio
    async def test_success(self, idp_client, oauth_config, fake_idp) -> None:
        """A 200 response yields a populated bundle."""
        bundle = await idp_client.exchange_code_for_tokens("code-1", "verifier-1", oauth_config)

        assert bundle.access_token == "tok123"
        assert bundle.refresh_token == "rt-1"
        assert bundle.expires_in == 120

        (request,) = fake_idp.token_requests
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert fake_idp.form(request) == {
            "grant_type": "authorization_code",
            "code": "code-1",
            "redirect_uri": oauth_config.redirect_uri,
            "client_id": "cid_test",
            "client_secret": "csc_test_secret",
            "code_verifier": "verifier-1",
        }

    @pytest.mark.asyncio
    async def test_defaults_when_fields_missing(self, idp_client, oauth_config, fake_idp) -> None:
        """expires_in defaults to 3600 and token_type to Bearer."""
        fake_idp.token_response = (200, {"access_token": "a"})
        bundle = await idp_client.exchange_code_for_tokens("c", "v", oauth_config)
        assert bundle.expires_in == 3600
        assert bundle.token_type == "Bearer"
        assert bundle.refresh_token is None

    @pytest.mark.asyncio
    async def test_provider_error_fields(self, idp_client, oauth_config, fake_idp) -> None:
        """Non-2xx surfaces the provider's error code and description."""
        fake_idp.token_response = (
            400,
            {"error": "invalid_grant", "error_description": "Code expired"},
        )
        with pytest.raises(TokenExchangeError) as exc_info:
            await idp_client.exchange_code_for_tokens("c", "v", oauth_config)

        exc = exc_info.value
        assert exc.error == "invalid_grant"
        assert exc.error_description == "Code expired"
        assert exc.status_code == 400
        assert exc.code == "token_exchange_failed"
        assert exc.to_dict()["provider_error"] == "invalid_grant"

    @pytest.mark.asyncio
    async def test_non_json_error_reports_status(self, idp_client, oauth_config, fake_idp) -> None:
        """Without a JSON error body, the HTTP status is reported."""
        fake_idp.token_response = (503, "Service Unavailable")
        with pytest.raises(TokenExchangeError, match="HTTP 503") as exc_info:
            await idp_client.exchange_code_for_tokens("c", "v", oauth_config)
        assert exc_info.value.error is None

    @pytest.mark.asyncio
    async def test_transport_failure(self, idp_client, oauth_config, fake_idp) -> None:
        """Network failures are IdpConnectionError, not protocol errors."""
        fake_idp.token_response = httpx.ConnectError("connection refused")
        with pytest.raises(IdpConnectionError) as exc_info:
            await idp_client.exchange_code_for_tokens("c", "v", oauth_config)
        assert not isinstance(exc_info.value, TokenExchangeError)
        assert exc_info.value.endpoint == oauth_config.token_endpoint

    @pytest.mark.asyncio
    async def test_success_without_access_token(self, idp_client, oauth_config, fake_idp) -> None:
        """A 2xx without access_token returns a bundle the caller must check."""
        fake_idp.token_response = (200, {"token_type": "Bearer"})
        bundle = await idp_client.exchange_code_for_tokens("c", "v", oauth_config)
        assert bundle.access_token is None

    @pytest.mark.asyncio
    async def test_success_with_non_json_body(self, idp_client, oauth_config, fake_idp) -> None:
        """A 2xx HTML body is treated as missing the token."""
        fake_idp.token_response = (200, "<html>ok</html>")
        bundle = await idp_client.exchange_code_for_tokens("c", "v", oauth_config)
        assert bundle.access_token is None


class TestRefreshTokens:
    """Tests for the refresh_token grant."""

    @pytest.mark.asyncio
    async def test_success(self, idp_client, oauth_config, fake_idp) -> None:
        """Refresh posts the refresh_token grant."""
        fake_idp.token_response = (200, {"access_token": "new", "expires_in": 60})
        bundle = await idp_client.refresh_tokens("rt-old", oauth_config)

        assert bundle.access_token == "new"
        assert bundle.refresh_token is None
        assert fake_idp.form(fake_idp.token_requests[0]) == {
            "grant_type": "refresh_token",
            "refresh_token": "rt-old",
            "client_id": "cid_test",
            "client_secret": "csc_test_secret",
        }

    @pytest.mark.asyncio
    async def test_failure(self, idp_client, oauth_config, fake_idp) -> None:
        """Rejected refreshes raise TokenRefreshError."""
        fake_idp.token_response = (400, {"error": "invalid_grant"})
        with pytest.raises(TokenRefreshError) as exc_info:
            await idp_client.refresh_tokens("rt", oauth_config)
        assert exc_info.value.code == "token_refresh_failed"
        assert isinstance(exc_info.value, TokenExchangeError)


class TestFetchUserinfo:
    """Tests for the best-effort profile fetch."""

    @pytest.mark.asyncio
    async def test_success(self, idp_client, oauth_config, fake_idp) -> None:
        """The bearer token is sent and the profile parsed."""
        fake_idp.userinfo_response = (
            200,
            {"sub": "u1", "username": "alice", "plan": "pro"},
        )
        profile = await idp_client.fetch_userinfo(oauth_config, "tok123")

        assert profile is not None
        assert profile.sub == "u1"
        assert profile.username == "alice"
        assert profile.extra == {"plan": "pro"}
        assert fake_idp.userinfo_requests[0].headers["authorization"] == "Bearer tok123"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            (401, {"error": "invalid_token"}),
            (200, "not json"),
            (200, {"username": "no-sub"}),
            httpx.ReadTimeout("slow"),
        ],
    )
    async def test_failures_return_none(self, idp_client, oauth_config, fake_idp, response) -> None:
        """Every failure mode yields None instead of raising."""
        fake_idp.userinfo_response = response
        assert await idp_client.fetch_userinfo(oauth_config, "tok") is None


class TestClientLifecycle:
    """Tests for HTTP client ownership."""

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, fake_idp) -> None:
        """close() does not close a client it did not create."""
        http_client = httpx.AsyncClient(transport=fake_idp.transport())
        client = IdpClient(http_client=http_client)
        await client.close()
        assert not http_client.is_closed
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self) -> None:
        """close() closes the lazily created client."""
        client = IdpClient(timeout=5.0)
        http_client = await client._get_client()
        assert http_client.timeout.read == 5.0
        await client.close()
        assert http_client.is_closed

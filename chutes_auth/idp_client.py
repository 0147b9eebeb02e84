"""Client for the identity provider's OAuth2 endpoints.

Wraps the four operations the sign-in flow needs:

- building the authorize URL (pure, no network),
- exchanging an authorization code for tokens,
- refreshing tokens,
- fetching the user profile (best-effort).

Each network operation is a single bounded request. Nothing here
retries; transient failures surface as :class:`IdpConnectionError`
and the caller decides.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from .exceptions import IdpConnectionError, TokenExchangeError, TokenRefreshError
from .types import TokenBundle, UserProfile


if TYPE_CHECKING:
    from .config import OAuthConfig


logger = logging.getLogger("chutes_auth.idp")


def _error_fields(resp: httpx.Response) -> tuple[str | None, str | None]:
    """Pull ``error`` / ``error_description`` out of an error body, if JSON."""
    try:
        body = resp.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    error = body.get("error")
    description = body.get("error_description")
    return (
        str(error) if error else None,
        str(description) if description else None,
    )


class IdpClient:
    """OAuth2 client for the IDP's ``/idp/*`` endpoints.

    Parameters
    ----------
    http_client : httpx.AsyncClient, optional
        Client to send requests with. When omitted, one is created
        lazily and owned (closed by :meth:`close`).
    timeout : float
        Timeout in seconds for each request (default 30).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close the owned HTTP client. Call from app shutdown lifecycle."""
        if self._owns_client and self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
        if self._owns_client:
            self._http_client = None

    def build_authorize_url(self, state: str, challenge: str, config: OAuthConfig) -> str:
        """Build the full authorization URL.

        Parameters
        ----------
        state : str
            CSRF protection nonce for this attempt.
        challenge : str
            S256 PKCE code challenge.
        config : OAuthConfig
            Request configuration.

        Returns
        -------
        str
            The authorize URL to redirect the browser to.
        """
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "scope": config.scope,
            "state": state,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
        }
        return f"{config.authorize_endpoint}?{urlencode(params)}"

    async def exchange_code_for_tokens(
        self, code: str, verifier: str, config: OAuthConfig
    ) -> TokenBundle:
        """Exchange an authorization code for tokens.

        Parameters
        ----------
        code : str
            The authorization code from the callback.
        verifier : str
            The PKCE code verifier stored for this attempt.
        config : OAuthConfig
            Request configuration.

        Returns
        -------
        TokenBundle
            The issued tokens. ``access_token`` is ``None`` when the
            IDP answered with success but omitted it.

        Raises
        ------
        TokenExchangeError
            If the token endpoint answers with a non-success status.
        IdpConnectionError
            If the token endpoint cannot be reached.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_uri,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            "code_verifier": verifier,
        }
        return await self._token_request(data, config, TokenExchangeError, "Token exchange")

    async def refresh_tokens(self, refresh_token: str, config: OAuthConfig) -> TokenBundle:
        """Mint a new token bundle from a refresh token.

        The provider may or may not rotate the refresh token; the
        returned bundle's ``refresh_token`` is ``None`` when it did not
        send one, and callers must keep the old one in that case.

        Raises
        ------
        TokenRefreshError
            If the token endpoint answers with a non-success status.
        IdpConnectionError
            If the token endpoint cannot be reached.
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
        }
        return await self._token_request(data, config, TokenRefreshError, "Token refresh")

    async def _token_request(
        self,
        data: dict[str, str],
        config: OAuthConfig,
        error_cls: type[TokenExchangeError],
        label: str,
    ) -> TokenBundle:
        endpoint = config.token_endpoint
        try:
            client = await self._get_client()
            resp = await client.post(
                endpoint,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s request to %s failed: %s", label, endpoint, type(exc).__name__)
            msg = f"{label} request failed: {type(exc).__name__}"
            raise IdpConnectionError(msg, endpoint=endpoint) from exc

        if not resp.is_success:
            error, description = _error_fields(resp)
            logger.warning(
                "%s rejected with HTTP %s (%s)", label, resp.status_code, error or "no error code"
            )
            msg = description or error or f"{label} failed with HTTP {resp.status_code}"
            raise error_cls(
                msg,
                status_code=resp.status_code,
                error=error,
                error_description=description,
            )

        try:
            payload: Any = resp.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            logger.warning("%s returned a non-JSON-object body", label)
            payload = {}

        bundle = TokenBundle.from_response(payload)
        logger.debug(
            "%s succeeded: expires_in=%s, refresh_token=%s",
            label,
            bundle.expires_in,
            "yes" if bundle.refresh_token else "no",
        )
        return bundle

    async def fetch_userinfo(self, config: OAuthConfig, access_token: str) -> UserProfile | None:
        """Fetch the signed-in user's profile.

        Best-effort: a non-success status, a network failure or a body
        without ``sub`` all yield ``None``. Never raises for IDP-side
        problems, so a missing profile can never fail a session.

        Parameters
        ----------
        config : OAuthConfig
            Request configuration.
        access_token : str
            A valid access token.

        Returns
        -------
        UserProfile or None
            The profile, or None when it could not be obtained.
        """
        try:
            client = await self._get_client()
            resp = await client.get(
                config.userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Userinfo request failed: %s", type(exc).__name__)
            return None

        if not resp.is_success:
            logger.warning("Userinfo rejected with HTTP %s", resp.status_code)
            return None

        try:
            body = resp.json()
        except ValueError:
            logger.warning("Userinfo returned a non-JSON body")
            return None
        if not isinstance(body, dict) or not body.get("sub"):
            logger.warning("Userinfo response has no subject")
            return None
        return UserProfile.from_dict(body)

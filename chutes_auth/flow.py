"""OAuth2 sign-in flow orchestrator.

Provides AuthFlowManager, which drives one browser session through
login -> callback -> token exchange -> signed-in session, plus logout,
session queries and refresh.

The manager holds no per-request state. Everything a sign-in attempt
needs between the login redirect and the callback lives in the
browser's :class:`~chutes_auth.state.SessionStore`, keyed by the
attempt's state token so concurrent attempts never collide.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import json
import logging
import secrets
import time

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .exceptions import (
    InvalidStateError,
    MissingParameterError,
    MissingRefreshTokenError,
    MissingVerifierError,
    NoAccessTokenError,
    ProviderError,
)
from .log import redact_sensitive_data
from .pkce import generate_pkce, generate_state
from .types import AuthSession, FlowState, LoginRedirect, TokenBundle, UserProfile


if TYPE_CHECKING:
    from .config import OAuthConfig
    from .idp_client import IdpClient
    from .state.base import SessionStore


logger = logging.getLogger("chutes_auth.flow")

STATE_KEY_PREFIX = "oauth_state:"
VERIFIER_KEY_PREFIX = "oauth_verifier:"
ACCESS_KEY = "session:access"
REFRESH_KEY = "session:refresh"
PROFILE_KEY = "session:profile"

SESSION_KEYS = (ACCESS_KEY, REFRESH_KEY, PROFILE_KEY)

DEFAULT_FLOW_TTL = 300
DEFAULT_REFRESH_TOKEN_TTL = 30 * 24 * 60 * 60


class AuthFlowManager:
    """Orchestrates the Authorization Code + PKCE flow.

    Parameters
    ----------
    idp_client : IdpClient
        Client for the IDP's authorize, token and userinfo endpoints.
    flow_ttl : int
        Seconds the state and verifier of one attempt stay valid
        (default 300).
    refresh_token_ttl : int
        Seconds a stored refresh token is kept (default 30 days).
    clock : callable, optional
        Wall-clock source used to stamp and expire sessions.
    """

    def __init__(
        self,
        idp_client: IdpClient,
        flow_ttl: int = DEFAULT_FLOW_TTL,
        refresh_token_ttl: int = DEFAULT_REFRESH_TOKEN_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the flow manager."""
        if flow_ttl <= 0:
            msg = f"flow_ttl must be positive, got {flow_ttl}"
            raise ValueError(msg)
        self.idp_client = idp_client
        self.flow_ttl = flow_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self._clock = clock

    # ── Login ───────────────────────────────────────────────────────

    async def start_login(self, config: OAuthConfig, store: SessionStore) -> LoginRedirect:
        """Begin a sign-in attempt.

        Generates a fresh state token and PKCE pair, stores both under
        the state with the flow TTL and builds the authorize URL. Makes
        no network call.

        Parameters
        ----------
        config : OAuthConfig
            The request's OAuth configuration.
        store : SessionStore
            The browser's session store.

        Returns
        -------
        LoginRedirect
            Where to send the browser, and the state bound to it.
        """
        state = generate_state()
        pkce = generate_pkce()

        await store.set(STATE_KEY_PREFIX + state, state, self.flow_ttl)
        await store.set(VERIFIER_KEY_PREFIX + state, pkce.verifier, self.flow_ttl)

        url = self.idp_client.build_authorize_url(state, pkce.challenge, config)
        logger.debug("Sign-in attempt started, redirecting to %s", config.authorize_endpoint)
        return LoginRedirect(url=url, state=state, expires_in=self.flow_ttl)

    # ── Callback ────────────────────────────────────────────────────

    async def handle_callback(
        self,
        config: OAuthConfig,
        store: SessionStore,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> AuthSession:
        """Complete a sign-in attempt from the IDP's redirect.

        Parameters
        ----------
        config : OAuthConfig
            The request's OAuth configuration.
        store : SessionStore
            The browser's session store.
        code, state, error, error_description : str, optional
            Query parameters of the callback request.

        Returns
        -------
        AuthSession
            The signed-in session.

        Raises
        ------
        ProviderError
            The IDP reported an error (for example ``access_denied``).
        MissingParameterError
            ``code`` or ``state`` is absent.
        InvalidStateError
            The state does not match a stored, unexpired one.
        MissingVerifierError
            No verifier is stored for this attempt.
        TokenExchangeError, IdpConnectionError
            The code exchange failed.
        NoAccessTokenError
            The token response carried no access token.
        """
        if error:
            if state:
                await self._discard_flow(store, state)
            logger.warning("Sign-in %s by provider: %s", FlowState.REJECTED.value, error)
            raise ProviderError(error, error_description)

        missing = [name for name, value in (("code", code), ("state", state)) if not value]
        if missing:
            logger.warning("Sign-in %s: missing %s", FlowState.REJECTED.value, ", ".join(missing))
            raise MissingParameterError(missing)
        assert code is not None and state is not None  # noqa: S101

        stored_state = await store.get(STATE_KEY_PREFIX + state)
        verifier = await store.get(VERIFIER_KEY_PREFIX + state)
        # Single use: consumed before any check can fail
        await self._discard_flow(store, state)

        if stored_state is None or not secrets.compare_digest(
            stored_state.encode("utf-8"), state.encode("utf-8")
        ):
            logger.warning("Sign-in %s: state mismatch or expired", FlowState.REJECTED.value)
            msg = "State mismatch or expired"
            raise InvalidStateError(msg)

        if not verifier:
            logger.warning("Sign-in %s: no PKCE verifier stored", FlowState.REJECTED.value)
            msg = "PKCE verifier missing or expired"
            raise MissingVerifierError(msg)

        bundle = await self.idp_client.exchange_code_for_tokens(code, verifier, config)
        self._stamp(bundle)
        if not bundle.access_token:
            logger.warning("Sign-in %s: token response had no access token", FlowState.REJECTED.value)
            msg = "Token response did not include an access token"
            raise NoAccessTokenError(msg)

        await self._save_tokens(store, bundle, keep_refresh_token=False)
        await store.delete(PROFILE_KEY)
        user = await self._fetch_and_cache_profile(config, store, bundle)

        logger.info(
            "Sign-in %s (user=%s)",
            FlowState.AUTHENTICATED.value,
            user.sub if user else "unknown",
        )
        return AuthSession(signed_in=True, user=user, expires_at=bundle.expires_at)

    # ── Logout ──────────────────────────────────────────────────────

    async def logout(self, store: SessionStore) -> None:
        """Forget the session and any in-flight sign-in attempts.

        Idempotent: logging out a signed-out browser succeeds.
        """
        for key in SESSION_KEYS:
            await store.delete(key)
        for prefix in (STATE_KEY_PREFIX, VERIFIER_KEY_PREFIX):
            for key in await store.list_keys(prefix):
                await store.delete(key)
        logger.info("Signed out")

    # ── Session queries ─────────────────────────────────────────────

    async def get_session(self, config: OAuthConfig | None, store: SessionStore) -> AuthSession:
        """Report who is signed in.

        Signed in iff an unexpired access token is stored. When no
        profile is cached and *config* is given, the profile is fetched
        lazily and cached; a failed fetch still reports signed in.
        """
        bundle = await self._load_access(store)
        if bundle is None:
            return AuthSession(signed_in=False)

        user = await self._load_profile(store)
        if user is None and config is not None:
            user = await self._fetch_and_cache_profile(config, store, bundle)
        return AuthSession(signed_in=True, user=user, expires_at=bundle.expires_at)

    async def get_access_token(self, store: SessionStore) -> str | None:
        """Return the current unexpired access token, if any."""
        bundle = await self._load_access(store)
        return bundle.access_token if bundle else None

    async def get_flow_state(self, store: SessionStore, state: str | None = None) -> FlowState:
        """Classify the browser's position in the sign-in flow.

        Parameters
        ----------
        store : SessionStore
            The browser's session store.
        state : str, optional
            An attempt's state token; when given, only that attempt is
            considered in flight.
        """
        if await self._load_access(store) is not None:
            return FlowState.AUTHENTICATED
        if state is not None:
            pending = await store.get(STATE_KEY_PREFIX + state) is not None
        else:
            pending = bool(await store.list_keys(STATE_KEY_PREFIX))
        return FlowState.AWAITING_CALLBACK if pending else FlowState.IDLE

    # ── Refresh ─────────────────────────────────────────────────────

    async def refresh(self, config: OAuthConfig, store: SessionStore) -> AuthSession:
        """Replace the session with tokens minted from the refresh token.

        Keeps the stored refresh token when the IDP does not rotate it,
        and keeps the cached profile.

        Raises
        ------
        MissingRefreshTokenError
            No refresh token is stored.
        TokenRefreshError, IdpConnectionError
            The refresh grant failed.
        NoAccessTokenError
            The token response carried no access token.
        """
        refresh_token = await store.get(REFRESH_KEY)
        if not refresh_token:
            msg = "No refresh token in session"
            raise MissingRefreshTokenError(msg)

        bundle = await self.idp_client.refresh_tokens(refresh_token, config)
        self._stamp(bundle)
        if not bundle.access_token:
            logger.warning("Refresh response had no access token")
            msg = "Refresh response did not include an access token"
            raise NoAccessTokenError(msg)

        user = await self._load_profile(store)
        await self._save_tokens(store, bundle, keep_refresh_token=True)
        if user is not None:
            await store.set(PROFILE_KEY, user.to_json(), self._remaining(bundle))

        logger.info(
            "Session refreshed (refresh token %s)",
            "rotated" if bundle.refresh_token else "kept",
        )
        return AuthSession(signed_in=True, user=user, expires_at=bundle.expires_at)

    # ── Internals ───────────────────────────────────────────────────

    async def _discard_flow(self, store: SessionStore, state: str) -> None:
        await store.delete(STATE_KEY_PREFIX + state)
        await store.delete(VERIFIER_KEY_PREFIX + state)

    def _stamp(self, bundle: TokenBundle) -> None:
        """Stamp issuance with this manager's clock and log the payload shape."""
        bundle.issued_at = self._clock()
        logger.debug("Token response: %s", redact_sensitive_data(bundle.raw))

    def _remaining(self, bundle: TokenBundle) -> int:
        """Seconds until the access token expires, at least 1."""
        return max(1, int(bundle.expires_at - self._clock()))

    async def _save_tokens(
        self, store: SessionStore, bundle: TokenBundle, *, keep_refresh_token: bool
    ) -> None:
        record = {
            "access_token": bundle.access_token,
            "token_type": bundle.token_type,
            "expires_in": bundle.expires_in,
            "issued_at": bundle.issued_at,
            "scope": bundle.scope,
        }
        await store.set(ACCESS_KEY, json.dumps(record), self._remaining(bundle))

        if bundle.refresh_token:
            await store.set(REFRESH_KEY, bundle.refresh_token, self.refresh_token_ttl)
        elif not keep_refresh_token:
            await store.delete(REFRESH_KEY)

    async def _load_access(self, store: SessionStore) -> TokenBundle | None:
        raw = await store.get(ACCESS_KEY)
        if not raw:
            return None
        try:
            record: dict[str, Any] = json.loads(raw)
            bundle = TokenBundle(
                access_token=record.get("access_token") or None,
                token_type=record.get("token_type") or "Bearer",
                expires_in=int(record["expires_in"]),
                issued_at=float(record["issued_at"]),
                scope=record.get("scope") or "",
            )
        except (ValueError, TypeError, KeyError):
            logger.warning("Discarding unreadable access token record")
            await store.delete(ACCESS_KEY)
            return None

        if not bundle.access_token or bundle.is_expired(self._clock()):
            return None
        return bundle

    async def _load_profile(self, store: SessionStore) -> UserProfile | None:
        raw = await store.get(PROFILE_KEY)
        if not raw:
            return None
        try:
            return UserProfile.from_json(raw)
        except (ValueError, TypeError, KeyError):
            logger.warning("Discarding unreadable cached profile")
            await store.delete(PROFILE_KEY)
            return None

    async def _fetch_and_cache_profile(
        self, config: OAuthConfig, store: SessionStore, bundle: TokenBundle
    ) -> UserProfile | None:
        if not bundle.access_token:
            return None
        user = await self.idp_client.fetch_userinfo(config, bundle.access_token)
        if user is not None:
            await store.set(PROFILE_KEY, user.to_json(), self._remaining(bundle))
        return user

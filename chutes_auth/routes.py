"""FastAPI routes for "Sign in with Chutes".

Provides login, callback, logout, session and refresh endpoints that
drive :class:`~chutes_auth.flow.AuthFlowManager` with a per-browser
session store.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import re
import secrets

from typing import TYPE_CHECKING
from urllib.parse import urlparse

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from .config import resolve_oauth_config
from .exceptions import (
    AuthenticationError,
    ChutesAuthError,
    ConfigurationError,
    IdpConnectionError,
    TokenExchangeError,
)
from .state.base import NamespacedStore
from .state.cookies import CookieSessionStore


if TYPE_CHECKING:
    from .config import AuthSettings, OAuthConfig
    from .flow import AuthFlowManager
    from .state.base import SessionStore


logger = logging.getLogger("chutes_auth.routes")

# secrets.token_urlsafe(32)
_SID_PATTERN = re.compile(r"[A-Za-z0-9_-]{43}")

ROUTE_PREFIX = "/api/auth/chutes"


# ── CSRF Origin Verification ────────────────────────────────────────


def _verify_csrf_origin(request: Request, *, trusted_origins: list[str] | None = None) -> bool:
    """Verify that POST requests originate from a trusted origin.

    Checks the ``Origin`` header first, then falls back to ``Referer``.
    Requests carrying neither are rejected.

    Parameters
    ----------
    request : Request
        The incoming request.
    trusted_origins : list[str] | None
        Allowed origins (e.g. ``["https://myapp.example.com"]``).
        If ``None`` or empty, allows same-origin requests only.
    """
    origin = request.headers.get("origin")
    referer = request.headers.get("referer")

    source_origin: str | None = None
    if origin and origin != "null":
        source_origin = origin.rstrip("/")
    elif referer:
        parsed = urlparse(referer)
        if parsed.scheme and parsed.netloc:
            source_origin = f"{parsed.scheme}://{parsed.netloc}"

    if source_origin is None:
        return False

    if trusted_origins:
        return source_origin in [o.rstrip("/") for o in trusted_origins]

    return source_origin == _request_origin(request)


def _request_origin(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}"


def _csrf_failed() -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={
            "error": "csrf_failed",
            "error_description": "Origin verification failed",
        },
    )


# ── Error rendering ──────────────────────────────────────────────────


def error_response(exc: ChutesAuthError) -> JSONResponse:
    """Render a flow exception as a JSON error response.

    ``ConfigurationError`` is a server fault (500), failures talking to
    the IDP are 502, and every other rejected attempt is 400.
    """
    if isinstance(exc, ConfigurationError):
        return JSONResponse(
            status_code=500,
            content={"error": "configuration_error", "error_description": exc.message},
        )
    if isinstance(exc, (TokenExchangeError, IdpConnectionError)):
        return JSONResponse(status_code=502, content=exc.to_dict())
    if isinstance(exc, AuthenticationError):
        return JSONResponse(status_code=400, content=exc.to_dict())
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "error_description": exc.message},
    )


# ── Per-browser store ────────────────────────────────────────────────


class BrowserSession:
    """The session store of the browser behind one request.

    With the ``cookie`` backend the browser's cookies are the store.
    Otherwise the shared server-side store is narrowed to a namespace
    named by the session-id cookie, which is issued on first use and
    reissued when the browser presents a malformed one.

    Parameters
    ----------
    request : Request
        The incoming request.
    settings : AuthSettings
        Cookie and backend settings.
    shared_store : SessionStore, optional
        Server-side store; required unless the backend is ``cookie``.
    """

    def __init__(
        self,
        request: Request,
        settings: AuthSettings,
        shared_store: SessionStore | None,
    ) -> None:
        self._settings = settings
        self._cookies: CookieSessionStore | None = None
        self._new_sid: str | None = None
        self._clear_sid = False
        self.store: SessionStore

        if settings.store_backend == "cookie":
            self._cookies = CookieSessionStore(request.cookies, secure=settings.cookie_secure)
            self.store = self._cookies
            return

        if shared_store is None:
            msg = f"A shared store is required for backend {settings.store_backend!r}"
            raise ValueError(msg)
        sid = request.cookies.get(settings.session_cookie)
        if not sid or not _SID_PATTERN.fullmatch(sid):
            sid = secrets.token_urlsafe(32)
            self._new_sid = sid
        self.store = NamespacedStore(shared_store, sid)

    def end(self) -> None:
        """Drop the session-id cookie once the response is written."""
        self._new_sid = None
        self._clear_sid = True

    def apply(self, response: Response) -> Response:
        """Write pending cookie changes onto *response* and return it."""
        if self._cookies is not None:
            self._cookies.apply(response)
        elif self._clear_sid:
            response.delete_cookie(
                self._settings.session_cookie,
                path="/",
                secure=self._settings.cookie_secure,
                httponly=True,
                samesite="lax",
            )
        elif self._new_sid is not None:
            response.set_cookie(
                key=self._settings.session_cookie,
                value=self._new_sid,
                max_age=self._settings.refresh_token_ttl,
                path="/",
                secure=self._settings.cookie_secure,
                httponly=True,
                samesite="lax",
            )
        return response


def create_auth_router(
    flow: AuthFlowManager,
    settings: AuthSettings,
    shared_store: SessionStore | None = None,
    *,
    post_login_redirect: str = "/",
    trusted_origins: list[str] | None = None,
) -> APIRouter:
    """Create a FastAPI router with the sign-in routes.

    Parameters
    ----------
    flow : AuthFlowManager
        The flow engine.
    settings : AuthSettings
        Static settings; OAuth configuration is resolved per request.
    shared_store : SessionStore, optional
        Server-side store for the ``memory`` / ``redis`` backends.
    post_login_redirect : str
        Where the browser lands after a successful callback.
    trusted_origins : list[str], optional
        Origins allowed to POST; same-origin only when omitted.

    Returns
    -------
    APIRouter
        Router with ``/api/auth/chutes/*`` routes.
    """
    router = APIRouter(prefix=ROUTE_PREFIX, tags=["authentication"])

    def _config(request: Request) -> OAuthConfig:
        return resolve_oauth_config(request_origin=_request_origin(request), settings=settings)

    @router.get("/login")
    async def auth_login(request: Request) -> Response:
        """Redirect the browser to the IDP's authorize page."""
        browser = BrowserSession(request, settings, shared_store)
        try:
            config = _config(request)
        except ConfigurationError as exc:
            logger.error("Cannot start sign-in: %s", exc)  # noqa: TRY400
            return error_response(exc)

        login = await flow.start_login(config, browser.store)
        return browser.apply(RedirectResponse(url=login.url, status_code=302))

    @router.get("/callback")
    async def auth_callback(
        request: Request,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> Response:
        """Complete sign-in and redirect into the app."""
        browser = BrowserSession(request, settings, shared_store)
        try:
            config = _config(request)
            await flow.handle_callback(
                config,
                browser.store,
                code=code,
                state=state,
                error=error,
                error_description=error_description,
            )
        except (ConfigurationError, AuthenticationError) as exc:
            # Consumed flow material must be cleared even on rejection
            return browser.apply(error_response(exc))

        return browser.apply(RedirectResponse(url=post_login_redirect, status_code=302))

    @router.post("/logout")
    async def auth_logout(request: Request) -> Response:
        """Forget the session and clear its cookies."""
        if not _verify_csrf_origin(request, trusted_origins=trusted_origins):
            return _csrf_failed()

        browser = BrowserSession(request, settings, shared_store)
        await flow.logout(browser.store)
        browser.end()
        return browser.apply(JSONResponse(content={"ok": True}))

    @router.get("/session")
    async def auth_session(request: Request) -> Response:
        """Report whether the browser is signed in, and as whom."""
        browser = BrowserSession(request, settings, shared_store)
        try:
            config: OAuthConfig | None = _config(request)
        except ConfigurationError:
            config = None

        session = await flow.get_session(config, browser.store)
        return browser.apply(JSONResponse(content=session.to_dict()))

    @router.post("/refresh")
    async def auth_refresh(request: Request) -> Response:
        """Mint a new access token from the stored refresh token."""
        if not _verify_csrf_origin(request, trusted_origins=trusted_origins):
            return _csrf_failed()

        browser = BrowserSession(request, settings, shared_store)
        try:
            session = await flow.refresh(_config(request), browser.store)
        except (ConfigurationError, AuthenticationError) as exc:
            return browser.apply(error_response(exc))

        return browser.apply(JSONResponse(content={"ok": True, "expiresAt": session.expires_at}))

    return router

"""FastAPI application factory with the sign-in routes mounted.

``create_app()`` wires settings, the IDP client, the session store and
the flow engine together, and serves a small demo page at ``/`` that
shows the session and offers sign-in / sign-out.
"""

from __future__ import annotations

import logging

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from .config import load_settings
from .flow import AuthFlowManager
from .idp_client import IdpClient
from .log import get_logger, set_level
from .routes import ROUTE_PREFIX, BrowserSession, create_auth_router
from .state import create_session_store


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from .config import AuthSettings
    from .state.base import SessionStore


logger = logging.getLogger("chutes_auth.app")


DEMO_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Sign in with Chutes</title>
<style>
  body {{ font-family: system-ui, sans-serif; background: #111; color: #eee; }}
  main {{ max-width: 600px; margin: 0 auto; padding: 4rem 2rem; text-align: center; }}
  .card {{ padding: 2rem; background: #1a1a1a; border: 1px solid #333; border-radius: 12px; }}
  a.button, button {{ display: inline-block; padding: 0.75rem 1.5rem; border-radius: 8px;
    background: #00dc82; color: #111; font-weight: 600; text-decoration: none; border: 0; }}
  pre {{ text-align: left; white-space: pre-wrap; color: #aaa; }}
</style>
</head>
<body>
<main>
  <h1>Sign in with Chutes</h1>
  <div class="card" id="card"><p>Loading session...</p></div>
</main>
<script>
const prefix = "{prefix}";
async function render() {{
  const card = document.getElementById("card");
  const res = await fetch(prefix + "/session", {{ credentials: "same-origin" }});
  const data = await res.json();
  if (!data.signedIn) {{
    card.innerHTML = '<p>Authenticate with your Chutes account</p>' +
      '<a class="button" href="' + prefix + '/login">Sign in with Chutes</a>';
    return;
  }}
  const who = data.user ? (data.user.username || data.user.name || data.user.sub) : "unknown user";
  card.innerHTML = '<p>Signed in as <strong></strong></p><pre></pre>' +
    '<button id="logout">Sign out</button>';
  card.querySelector("strong").textContent = who;
  card.querySelector("pre").textContent = JSON.stringify(data.user, null, 2);
  document.getElementById("logout").onclick = async () => {{
    await fetch(prefix + "/logout", {{ method: "POST", credentials: "same-origin" }});
    render();
  }};
}}
render();
</script>
</body>
</html>
"""


def create_app(
    settings: AuthSettings | None = None,
    *,
    idp_client: IdpClient | None = None,
    shared_store: SessionStore | None = None,
    clock: Callable[[], float] | None = None,
    demo_page: bool = True,
) -> FastAPI:
    """Create a FastAPI app serving the sign-in routes.

    Parameters
    ----------
    settings : AuthSettings, optional
        Settings; loaded from the environment when omitted.
    idp_client : IdpClient, optional
        IDP client; one with the configured timeout is created when
        omitted. Injected clients are not closed on shutdown.
    shared_store : SessionStore, optional
        Server-side store; created from ``settings.store_backend``
        when omitted (unless the backend is ``cookie``).
    clock : callable, optional
        Wall-clock source for the flow engine.
    demo_page : bool
        Serve the demo page at ``/`` (default True).

    Returns
    -------
    FastAPI
        The configured application. The flow engine is available as
        ``app.state.auth_flow``.
    """
    if settings is None:
        settings = load_settings()

    get_logger()
    set_level(settings.log_level)

    owns_client = idp_client is None
    if idp_client is None:
        idp_client = IdpClient(timeout=settings.http_timeout)

    owns_store = shared_store is None
    if shared_store is None and settings.store_backend != "cookie":
        shared_store = create_session_store(settings)

    flow_kwargs = {} if clock is None else {"clock": clock}
    flow = AuthFlowManager(
        idp_client,
        flow_ttl=settings.flow_ttl,
        refresh_token_ttl=settings.refresh_token_ttl,
        **flow_kwargs,
    )

    @asynccontextmanager
    async def _lifespan(
        app: FastAPI,  # pylint: disable=unused-argument
    ) -> AsyncIterator[None]:
        logger.info("Session store backend: %s", settings.store_backend)
        yield
        if owns_client:
            await idp_client.close()
        if owns_store and shared_store is not None:
            await shared_store.close()

    app = FastAPI(title="chutes-auth", lifespan=_lifespan)
    app.state.auth_settings = settings
    app.state.auth_flow = flow
    app.state.auth_store = shared_store
    app.include_router(create_auth_router(flow, settings, shared_store))

    if demo_page:

        @app.get("/", response_class=HTMLResponse)
        async def index() -> HTMLResponse:
            return HTMLResponse(DEMO_PAGE.format(prefix=ROUTE_PREFIX))

    return app


async def current_access_token(request: Request) -> str | None:
    """Return the calling browser's access token, for host routes.

    Usable as a FastAPI dependency in apps built by :func:`create_app`::

        @app.post("/api/chat")
        async def chat(token: str | None = Depends(current_access_token)):
            ...
    """
    state = request.app.state
    browser = BrowserSession(request, state.auth_settings, state.auth_store)
    return await state.auth_flow.get_access_token(browser.store)

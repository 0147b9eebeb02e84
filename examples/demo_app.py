"""Sign in with Chutes - host app demo.

This example mounts the sign-in routes into an app and adds one route
of its own that needs a signed-in browser:

- ``/``                         demo page with sign-in / sign-out
- ``/api/auth/chutes/*``        login, callback, logout, session, refresh
- ``/api/whoami``               401 unless signed in

Run with:
    CHUTES_AUTH__CLIENT_ID=cid_... CHUTES_AUTH__CLIENT_SECRET=csc_... python demo_app.py

Or with the Redis store:
    CHUTES_AUTH__STORE_BACKEND=redis CHUTES_AUTH__REDIS_URL=redis://localhost:6379/0 python demo_app.py
"""

from __future__ import annotations

import os

import uvicorn

from fastapi import Depends, Request
from fastapi.responses import JSONResponse

from chutes_auth import create_app, current_access_token, load_settings
from chutes_auth.config import resolve_oauth_config
from chutes_auth.routes import BrowserSession


os.environ.setdefault("CHUTES_AUTH__LOG_LEVEL", "INFO")

settings = load_settings()
app = create_app(settings)


@app.get("/api/whoami")
async def whoami(request: Request, token: str | None = Depends(current_access_token)):
    """Return the signed-in user's profile, or 401."""
    if token is None:
        return JSONResponse(status_code=401, content={"error": "not_signed_in"})

    flow = request.app.state.auth_flow
    browser = BrowserSession(request, settings, request.app.state.auth_store)
    config = resolve_oauth_config(f"{request.url.scheme}://{request.url.netloc}", settings=settings)
    session = await flow.get_session(config, browser.store)
    return browser.apply(JSONResponse(content=session.to_dict()))


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=3000)

"""Pluggable session storage for chutes-auth.

Backends:

- ``MemorySessionStore`` - single process, development.
- ``RedisSessionStore`` - multi-worker deployments.
- ``CookieSessionStore`` - the browser's cookies, one store per request.

Server-side backends are shared by all browsers; wrap them in
``NamespacedStore`` with a per-browser session id.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import NamespacedStore, SessionStore
from .cookies import CookieSessionStore
from .memory import MemorySessionStore
from .redis import RedisSessionStore


if TYPE_CHECKING:
    from ..config import AuthSettings


def create_session_store(settings: AuthSettings) -> SessionStore:
    """Create the shared server-side store named by the settings.

    Parameters
    ----------
    settings : AuthSettings
        Settings with ``store_backend`` set to "memory" or "redis".

    Returns
    -------
    SessionStore
        A new store instance.

    Raises
    ------
    ValueError
        If the backend is "cookie" (created per request instead) or unknown.
    """
    backend = settings.store_backend
    if backend == "memory":
        return MemorySessionStore()
    if backend == "redis":
        return RedisSessionStore(
            redis_url=settings.redis_url,
            prefix=settings.redis_prefix,
        )
    msg = f"No shared store for backend {backend!r}"
    raise ValueError(msg)


__all__ = [
    "CookieSessionStore",
    "MemorySessionStore",
    "NamespacedStore",
    "RedisSessionStore",
    "SessionStore",
    "create_session_store",
]

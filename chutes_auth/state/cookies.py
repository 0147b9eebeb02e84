"""Browser cookies as a session store.

Each key becomes one httponly cookie whose ``Max-Age`` is the key's
TTL, so the browser performs expiry. Values are stored base64url-encoded
so JSON records survive cookie quoting. Reads see the request's cookies
plus any writes made earlier in the same request; writes are queued
and written onto the outgoing response by :meth:`CookieSessionStore.apply`.
"""

from __future__ import annotations

import binascii

from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import TYPE_CHECKING

from .base import SessionStore


if TYPE_CHECKING:
    from collections.abc import Mapping

    from starlette.responses import Response


class CookieSessionStore(SessionStore):
    """Per-request store backed by the browser's cookie jar.

    Parameters
    ----------
    cookies : Mapping[str, str]
        Cookies sent with the inbound request.
    prefix : str
        Cookie name prefix (default "chutes_").
    secure : bool
        Set the ``Secure`` attribute on written cookies.
    path : str
        Cookie path (default "/").
    """

    def __init__(
        self,
        cookies: Mapping[str, str],
        prefix: str = "chutes_",
        secure: bool = False,
        path: str = "/",
    ) -> None:
        self._prefix = prefix
        self._secure = secure
        self._path = path
        self._cookies = {k: v for k, v in cookies.items() if k.startswith(prefix)}
        self._pending: dict[str, tuple[str | None, int]] = {}

    def _name(self, key: str) -> str:
        # ':' is not a valid cookie-name character
        return self._prefix + key.replace(":", ".")

    def _key(self, name: str) -> str:
        return name[len(self._prefix) :].replace(".", ":")

    @staticmethod
    def _encode(value: str) -> str:
        return urlsafe_b64encode(value.encode("utf-8")).rstrip(b"=").decode("ascii")

    @staticmethod
    def _decode(raw: str) -> str | None:
        try:
            return urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return None

    async def get(self, key: str) -> str | None:
        """Get a cookie value; empty or undecodable cookies read as absent."""
        raw = self._cookies.get(self._name(key))
        if not raw:
            return None
        return self._decode(raw) or None

    async def set(self, key: str, value: str, ttl: int) -> None:
        """Queue a cookie with ``Max-Age=ttl``."""
        if ttl <= 0:
            msg = f"ttl must be positive, got {ttl}"
            raise ValueError(msg)
        name = self._name(key)
        encoded = self._encode(value)
        self._cookies[name] = encoded
        self._pending[name] = (encoded, ttl)

    async def delete(self, key: str) -> None:
        """Queue removal of a cookie."""
        name = self._name(key)
        self._cookies.pop(name, None)
        self._pending[name] = (None, 0)

    async def list_keys(self, prefix: str = "") -> list[str]:
        """List keys of the cookies currently visible to this request."""
        start = self._name(prefix)
        return [self._key(name) for name in self._cookies if name.startswith(start)]

    def apply(self, response: Response) -> None:
        """Write queued cookie changes onto *response*."""
        for name, (value, ttl) in self._pending.items():
            if value is None:
                response.delete_cookie(
                    name,
                    path=self._path,
                    secure=self._secure,
                    httponly=True,
                    samesite="lax",
                )
            else:
                response.set_cookie(
                    key=name,
                    value=value,
                    max_age=ttl,
                    path=self._path,
                    secure=self._secure,
                    httponly=True,
                    samesite="lax",
                )
        self._pending.clear()

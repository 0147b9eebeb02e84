"""In-memory session store.

Default backend for single-process deployments and development.
"""

from __future__ import annotations

import asyncio
import time

from collections.abc import Callable

from .base import SessionStore


class MemorySessionStore(SessionStore):
    """In-memory key-value store with TTL for single-process deployments.

    Thread-safe via ``asyncio.Lock``. Evicts expired entries on every
    write and enforces a hard capacity limit so abandoned logins cannot
    grow memory without bound.

    Parameters
    ----------
    max_entries : int
        Maximum number of live keys. The entry closest to expiry is
        evicted when a write would exceed it.
    clock : callable, optional
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_entries: int = 100_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self._max_entries = max_entries
        self._clock = clock

    async def get(self, key: str) -> str | None:
        """Get a value, dropping it if expired."""
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store a value that expires after *ttl* seconds."""
        if ttl <= 0:
            msg = f"ttl must be positive, got {ttl}"
            raise ValueError(msg)
        async with self._lock:
            self._evict_expired()
            if key not in self._data and len(self._data) >= self._max_entries:
                soonest = min(self._data, key=lambda k: self._data[k][1])
                del self._data[soonest]
            self._data[key] = (value, self._clock() + ttl)

    async def delete(self, key: str) -> None:
        """Delete a value."""
        async with self._lock:
            self._data.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        """List live keys with the given prefix."""
        async with self._lock:
            self._evict_expired()
            return [k for k in self._data if k.startswith(prefix)]

    async def cleanup(self) -> int:
        """Explicitly remove expired entries. Returns count removed."""
        async with self._lock:
            return self._evict_expired()

    async def size(self) -> int:
        """Return the number of stored entries, expired ones included."""
        async with self._lock:
            return len(self._data)

    def _evict_expired(self) -> int:
        """Remove all expired entries (caller must hold lock)."""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._data.items() if now >= expires_at]
        for k in expired:
            del self._data[k]
        return len(expired)

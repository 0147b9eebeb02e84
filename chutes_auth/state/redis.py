"""Redis session store.

Production backend for multi-worker deployments.
Requires the `redis` package: pip install chutes-auth[redis]
"""

from __future__ import annotations

import re

from typing import TYPE_CHECKING, Any

from .base import SessionStore


if TYPE_CHECKING:
    from redis.asyncio import Redis


try:
    from redis.asyncio import Redis as RedisClient

    HAS_REDIS = True
except ImportError:
    HAS_REDIS = False
    RedisClient = None  # type: ignore[assignment,misc]


_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_pattern(text: str) -> str:
    """Escape glob metacharacters for a ``SCAN MATCH`` pattern."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


def _check_redis() -> None:
    """Check if redis package is available."""
    if not HAS_REDIS:
        msg = "Redis backend requires the 'redis' package. Install with: pip install chutes-auth[redis]"
        raise ImportError(msg)


class RedisSessionStore(SessionStore):
    """Redis-backed key-value store; TTL is enforced by Redis itself.

    Parameters
    ----------
    redis_url : str
        Redis connection URL.
    prefix : str
        Key prefix for namespacing (default "chutes_auth").
    pool_size : int
        Connection pool size.
    redis_client : Redis, optional
        Pre-configured Redis client (for testing with fakeredis).
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "chutes_auth",
        pool_size: int = 10,
        *,
        redis_client: Redis | None = None,
    ) -> None:
        self._prefix = f"{prefix.rstrip(':')}:"
        self._owns_client = redis_client is None
        if redis_client is None:
            _check_redis()
            redis_client = RedisClient.from_url(
                redis_url,
                max_connections=pool_size,
                decode_responses=True,
            )
        self._redis: Any = redis_client

    def _key(self, key: str) -> str:
        """Build a Redis key with prefix."""
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> str | None:
        """Get a value from Redis."""
        value = await self._redis.get(self._key(key))
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store a value with ``SET ... EX ttl``."""
        if ttl <= 0:
            msg = f"ttl must be positive, got {ttl}"
            raise ValueError(msg)
        await self._redis.set(self._key(key), value, ex=ttl)

    async def delete(self, key: str) -> None:
        """Delete a value from Redis."""
        await self._redis.delete(self._key(key))

    async def list_keys(self, prefix: str = "") -> list[str]:
        """List keys with ``SCAN``; never blocks Redis with ``KEYS``."""
        full_prefix = self._prefix + prefix
        pattern = _escape_pattern(full_prefix) + "*"
        strip = len(self._prefix)
        keys: list[str] = []
        async for key in self._redis.scan_iter(match=pattern):
            name = key.decode("utf-8") if isinstance(key, bytes) else key
            if not name.startswith(full_prefix):
                continue
            keys.append(name[strip:])
        return keys

    async def close(self) -> None:
        """Close the Redis connection pool if this store created it."""
        if self._owns_client:
            await self._redis.aclose()

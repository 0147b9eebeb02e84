"""Abstract base class for pluggable session storage.

The flow engine depends only on this interface: an async key-value
store with per-key TTL. Backends decide where values live (process
memory, Redis, browser cookies).
"""

# pylint: disable=unnecessary-ellipsis
# Ellipsis (...) is the standard Python idiom for abstract method bodies

from __future__ import annotations

from abc import ABC, abstractmethod


class SessionStore(ABC):
    """Abstract key-value store with TTL.

    Values are strings. Implementations must expire a key once its TTL
    elapses whether or not it is ever read again, and must be safe for
    concurrent use by independent requests.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get a value.

        Parameters
        ----------
        key : str
            The key to read.

        Returns
        -------
        str or None
            The stored value, or None if absent or expired.
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store a value.

        Parameters
        ----------
        key : str
            The key to write.
        value : str
            The value to store.
        ttl : int
            Time-to-live in seconds. Must be positive.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a value. Deleting a missing key is not an error.

        Parameters
        ----------
        key : str
            The key to delete.
        """
        ...

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """List live keys starting with *prefix*.

        Parameters
        ----------
        prefix : str
            Key prefix filter (default: all keys).

        Returns
        -------
        list[str]
            Matching keys.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release backend resources. No-op by default."""


class NamespacedStore(SessionStore):
    """View of a shared store restricted to one browser session.

    Every key is prefixed with ``{namespace}:`` so two browsers never
    see each other's flow material or tokens.

    Parameters
    ----------
    backend : SessionStore
        The shared store.
    namespace : str
        Per-browser session identifier.
    """

    def __init__(self, backend: SessionStore, namespace: str) -> None:
        if not namespace:
            msg = "namespace must not be empty"
            raise ValueError(msg)
        self.backend = backend
        self.namespace = namespace
        self._prefix = f"{namespace}:"

    async def get(self, key: str) -> str | None:
        return await self.backend.get(self._prefix + key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self.backend.set(self._prefix + key, value, ttl)

    async def delete(self, key: str) -> None:
        await self.backend.delete(self._prefix + key)

    async def list_keys(self, prefix: str = "") -> list[str]:
        keys = await self.backend.list_keys(self._prefix + prefix)
        return [k[len(self._prefix) :] for k in keys]

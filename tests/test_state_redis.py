"""Tests for the Redis session store.

These tests use fakeredis to simulate Redis without requiring a real server.
"""
# pylint: disable=redefined-outer-name

from __future__ import annotations

import pytest
import pytest_asyncio

from chutes_auth.flow import AuthFlowManager
from chutes_auth.state.base import NamespacedStore


# Check if fakeredis is available
try:
    import fakeredis.aioredis

    HAS_FAKEREDIS = True
except ImportError:
    HAS_FAKEREDIS = False


pytestmark = pytest.mark.skipif(
    not HAS_FAKEREDIS,
    reason="fakeredis not installed (pip install fakeredis)",
)


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fake Redis client for testing."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


class TestRedisSessionStore:
    """Tests for RedisSessionStore."""

    @pytest_asyncio.fixture
    async def store(self, fake_redis: fakeredis.aioredis.FakeRedis):
        """Create a RedisSessionStore with fake Redis."""
        from chutes_auth.state.redis import RedisSessionStore

        store = RedisSessionStore(redis_client=fake_redis, prefix="test")
        yield store

    @pytest.mark.asyncio
    async def test_set_and_get(self, store) -> None:
        """Test storing and reading a value."""
        await store.set("oauth_state:abc", "abc", 300)
        assert await store.get("oauth_state:abc") == "abc"

    @pytest.mark.asyncio
    async def test_get_nonexistent(self, store) -> None:
        """Test reading a missing key."""
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_ttl_applied(self, store, fake_redis) -> None:
        """Test that values are written with SET EX."""
        await store.set("k", "v", 300)
        ttl = await fake_redis.ttl("test:k")
        assert 0 < ttl <= 300

    @pytest.mark.asyncio
    async def test_prefix(self, store, fake_redis) -> None:
        """Test that keys are namespaced with the prefix."""
        await store.set("k", "v", 60)
        assert await fake_redis.get("test:k") == "v"

    @pytest.mark.asyncio
    async def test_delete(self, store) -> None:
        """Test deleting a value."""
        await store.set("k", "v", 60)
        await store.delete("k")
        await store.delete("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_list_keys(self, store, fake_redis) -> None:
        """Test listing keys by prefix without the store prefix."""
        await store.set("oauth_state:a", "a", 60)
        await store.set("oauth_state:b", "b", 60)
        await store.set("session:access", "x", 60)
        await fake_redis.set("other:oauth_state:c", "c")

        assert sorted(await store.list_keys("oauth_state:")) == ["oauth_state:a", "oauth_state:b"]

    @pytest.mark.asyncio
    async def test_list_keys_treats_prefix_literally(self, store) -> None:
        """Test that glob metacharacters in the prefix match only themselves."""
        await store.set("victim:oauth_state:S", "S", 60)
        await store.set("v[i]*:oauth_state:T", "T", 60)

        assert await store.list_keys("??????:") == []
        assert await store.list_keys("*") == []
        assert await store.list_keys("v[i]*:") == ["v[i]*:oauth_state:T"]

    @pytest.mark.asyncio
    async def test_namespace_cannot_see_other_browsers(self, store) -> None:
        """Test that a wildcard namespace lists none of another browser's keys."""
        victim = NamespacedStore(store, "v" * 43)
        await victim.set("oauth_state:S", "S", 60)

        intruder = NamespacedStore(store, "?" * 43)
        assert await intruder.list_keys("oauth_state:") == []
        assert await victim.list_keys("oauth_state:") == ["oauth_state:S"]

    @pytest.mark.asyncio
    async def test_rejects_non_positive_ttl(self, store) -> None:
        """Test that a TTL must be positive."""
        with pytest.raises(ValueError, match="ttl"):
            await store.set("k", "v", -1)

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, store, fake_redis) -> None:
        """Test that close() leaves an injected client usable."""
        await store.close()
        assert await fake_redis.ping()

    @pytest.mark.asyncio
    async def test_bytes_responses_decoded(self) -> None:
        """Test a client without decode_responses."""
        from chutes_auth.state.redis import RedisSessionStore

        raw = fakeredis.aioredis.FakeRedis()
        store = RedisSessionStore(redis_client=raw, prefix="b")
        await store.set("k", "v", 60)
        assert await store.get("k") == "v"
        assert await store.list_keys() == ["k"]


class TestFlowOverRedis:
    """The flow engine running on the Redis store."""

    @pytest.mark.asyncio
    async def test_sign_in_and_logout(self, fake_redis, idp_client, oauth_config, clock) -> None:
        """Test a full sign-in and logout on a namespaced Redis store."""
        from chutes_auth.state.redis import RedisSessionStore

        shared = RedisSessionStore(redis_client=fake_redis, prefix="app")
        store = NamespacedStore(shared, "browser-1")
        flow = AuthFlowManager(idp_client, clock=clock)

        login = await flow.start_login(oauth_config, store)
        session = await flow.handle_callback(oauth_config, store, code="c", state=login.state)
        assert session.signed_in
        assert await fake_redis.exists("app:browser-1:session:access")

        await flow.logout(store)
        assert await shared.list_keys("browser-1:") == []

"""Tests for the key-value store backends."""
from unittest.mock import AsyncMock, patch

import pytest

from app.config import AppConfig, RedisSecrets, Secrets, StoreSettings
from app.store import MemoryStore, RedisStore, create_store
from app.store.base import redis_range


class TestRedisRange:
    """Inclusive Redis ranges mapped onto Python slices."""

    def test_whole_list(self):
        assert redis_range(5, 0, -1) == slice(0, 5)

    def test_stop_past_end_is_clamped(self):
        assert redis_range(3, 0, 99) == slice(0, 3)

    def test_negative_start(self):
        assert redis_range(5, -2, -1) == slice(3, 5)

    def test_empty_cases(self):
        assert redis_range(0, 0, -1) is None
        assert redis_range(5, 4, 2) is None
        assert redis_range(5, 7, 9) is None


class TestMemoryStore:

    @pytest.mark.asyncio
    async def test_set_operations(self):
        store = MemoryStore()
        assert await store.sadd("s", "a", "b") == 2
        assert await store.sadd("s", "a") == 0
        assert await store.sismember("s", "a") is True
        assert await store.smembers("s") == {"a", "b"}
        assert await store.srem("s", "a", "zzz") == 1
        assert await store.sismember("s", "a") is False
        assert await store.srem("missing", "a") == 0

    @pytest.mark.asyncio
    async def test_hash_upsert_keeps_other_fields(self):
        store = MemoryStore()
        assert await store.hset("h", {"lastSeen": "1", "sessionId": "x"}) == 2
        assert await store.hset("h", {"lastSeen": "2"}) == 0
        assert await store.hgetall("h") == {"lastSeen": "2", "sessionId": "x"}
        assert await store.hgetall("missing") == {}

    @pytest.mark.asyncio
    async def test_lpush_prepends_in_argument_order(self):
        store = MemoryStore()
        await store.lpush("l", "1")
        assert await store.lpush("l", "2", "3") == 3
        assert await store.lrange("l", 0, -1) == ["3", "2", "1"]

    @pytest.mark.asyncio
    async def test_ltrim_keeps_head(self):
        store = MemoryStore()
        for i in range(5):
            await store.lpush("l", str(i))
        await store.ltrim("l", 0, 2)
        assert await store.lrange("l", 0, -1) == ["4", "3", "2"]

    @pytest.mark.asyncio
    async def test_ltrim_to_empty_range(self):
        store = MemoryStore()
        await store.lpush("l", "a")
        await store.ltrim("l", 5, 10)
        assert await store.lrange("l", 0, -1) == []

    @pytest.mark.asyncio
    async def test_ping(self):
        assert await MemoryStore().ping() is True


class TestRedisStore:
    """RedisStore delegates each call to the redis.asyncio client."""

    @pytest.mark.asyncio
    async def test_set_calls(self):
        client = AsyncMock()
        client.sismember.return_value = 1
        client.smembers.return_value = {"u1"}
        store = RedisStore(client)

        await store.sadd("online_users", "u1")
        client.sadd.assert_awaited_once_with("online_users", "u1")
        assert await store.sismember("online_users", "u1") is True
        assert await store.smembers("online_users") == {"u1"}

    @pytest.mark.asyncio
    async def test_hset_passes_mapping(self):
        client = AsyncMock()
        store = RedisStore(client)
        await store.hset("presence:u1", {"lastSeen": "123"})
        client.hset.assert_awaited_once_with("presence:u1", mapping={"lastSeen": "123"})

    @pytest.mark.asyncio
    async def test_list_calls(self):
        client = AsyncMock()
        client.lrange.return_value = ["b", "a"]
        store = RedisStore(client)

        await store.lpush("chat:history", "a")
        await store.ltrim("chat:history", 0, 99)
        assert await store.lrange("chat:history", 0, -1) == ["b", "a"]
        client.lpush.assert_awaited_once_with("chat:history", "a")
        client.ltrim.assert_awaited_once_with("chat:history", 0, 99)

    @pytest.mark.asyncio
    async def test_close_uses_aclose(self):
        client = AsyncMock()
        await RedisStore(client).close()
        client.aclose.assert_awaited_once()

    @patch("app.store.redis_store.Redis")
    def test_from_url_decodes_responses(self, mock_redis):
        RedisStore.from_url("redis://cache:6379/1", password="pw")
        mock_redis.from_url.assert_called_once_with(
            "redis://cache:6379/1", decode_responses=True, password="pw"
        )


class TestCreateStore:

    def test_memory_backend(self):
        config = AppConfig(store=StoreSettings(backend="memory"))
        assert isinstance(create_store(config), MemoryStore)

    @patch("app.store.redis_store.Redis")
    def test_redis_backend(self, mock_redis):
        config = AppConfig(
            store=StoreSettings(backend="redis", url="redis://cache:6379/0"),
            secrets=Secrets(redis=RedisSecrets(password=None)),
        )
        assert isinstance(create_store(config), RedisStore)
        mock_redis.from_url.assert_called_once_with(
            "redis://cache:6379/0", decode_responses=True
        )

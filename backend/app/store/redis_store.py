"""Redis-backed key-value store using ``redis.asyncio``."""
import logging
from typing import Dict, List, Mapping, Optional, Set

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisStore:
    """Thin async adapter from :class:`KeyValueStore` onto a Redis client."""

    def __init__(self, redis: Redis) -> None:
        """Initialize the store.

        Args:
            redis: Async Redis client created with ``decode_responses=True``.
        """
        self._redis = redis

    @classmethod
    def from_url(cls, url: str, password: Optional[str] = None) -> "RedisStore":
        """Create a store connected to the Redis instance at *url*."""
        options = {"decode_responses": True}
        if password:
            options["password"] = password
        client = Redis.from_url(url, **options)
        logger.info("Redis store configured for %s", url)
        return cls(client)

    async def sadd(self, key: str, *members: str) -> int:
        return await self._redis.sadd(key, *members)

    async def srem(self, key: str, *members: str) -> int:
        return await self._redis.srem(key, *members)

    async def sismember(self, key: str, member: str) -> bool:
        return bool(await self._redis.sismember(key, member))

    async def smembers(self, key: str) -> Set[str]:
        return set(await self._redis.smembers(key))

    async def hset(self, key: str, mapping: Mapping[str, str]) -> int:
        return await self._redis.hset(key, mapping=dict(mapping))

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(await self._redis.hgetall(key))

    async def lpush(self, key: str, *values: str) -> int:
        return await self._redis.lpush(key, *values)

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        await self._redis.ltrim(key, start, stop)

    async def lrange(self, key: str, start: int, stop: int) -> List[str]:
        return list(await self._redis.lrange(key, start, stop))

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("Redis store connection closed")

"""Shared key-value store backends (Redis and in-memory)."""
from app.config import AppConfig

from .base import KeyValueStore
from .memory import MemoryStore
from .redis_store import RedisStore


def create_store(config: AppConfig) -> KeyValueStore:
    """Build the store backend selected by ``store.backend``."""
    if config.store.backend == "memory":
        return MemoryStore()
    return RedisStore.from_url(
        config.store.url, password=config.secrets.redis.password
    )


__all__ = ["KeyValueStore", "MemoryStore", "RedisStore", "create_store"]

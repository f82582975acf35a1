"""Process-local key-value store.

Used in development (``store.backend: memory``) and by the test-suite. All
state lives in plain dicts; since the realtime layer runs on a single event
loop, each method is atomic with respect to other coroutines.
"""
import logging
from collections import defaultdict
from typing import Dict, List, Mapping, Set

from .base import redis_range

logger = logging.getLogger(__name__)


class MemoryStore:
    """In-memory implementation of :class:`~app.store.base.KeyValueStore`."""

    def __init__(self) -> None:
        self._sets: Dict[str, Set[str]] = defaultdict(set)
        self._hashes: Dict[str, Dict[str, str]] = defaultdict(dict)
        self._lists: Dict[str, List[str]] = defaultdict(list)

    # -- sets ---------------------------------------------------------------

    async def sadd(self, key: str, *members: str) -> int:
        target = self._sets[key]
        added = [m for m in members if m not in target]
        target.update(added)
        return len(added)

    async def srem(self, key: str, *members: str) -> int:
        target = self._sets.get(key)
        if not target:
            return 0
        removed = [m for m in members if m in target]
        target.difference_update(removed)
        return len(removed)

    async def sismember(self, key: str, member: str) -> bool:
        return member in self._sets.get(key, ())

    async def smembers(self, key: str) -> Set[str]:
        return set(self._sets.get(key, ()))

    # -- hashes -------------------------------------------------------------

    async def hset(self, key: str, mapping: Mapping[str, str]) -> int:
        target = self._hashes[key]
        created = sum(1 for field in mapping if field not in target)
        target.update({field: str(value) for field, value in mapping.items()})
        return created

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self._hashes.get(key, {}))

    # -- lists --------------------------------------------------------------

    async def lpush(self, key: str, *values: str) -> int:
        target = self._lists[key]
        # LPUSH inserts each value at the head in argument order
        for value in values:
            target.insert(0, value)
        return len(target)

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        target = self._lists.get(key)
        if target is None:
            return
        window = redis_range(len(target), start, stop)
        self._lists[key] = target[window] if window else []

    async def lrange(self, key: str, start: int, stop: int) -> List[str]:
        target = self._lists.get(key, [])
        window = redis_range(len(target), start, stop)
        return target[window] if window else []

    # -- lifecycle ----------------------------------------------------------

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug("Memory store closed")

"""Key-value store interface shared by the presence and history components.

The interface is the subset of Redis commands the realtime layer needs.
Every method is a single store-side operation; callers that issue several
in a row get no transactional guarantee across them.
"""
from typing import Dict, List, Mapping, Optional, Protocol, Set


class KeyValueStore(Protocol):
    """Async key-value store with Redis set, hash and list semantics."""

    async def sadd(self, key: str, *members: str) -> int: ...

    async def srem(self, key: str, *members: str) -> int: ...

    async def sismember(self, key: str, member: str) -> bool: ...

    async def smembers(self, key: str) -> Set[str]: ...

    async def hset(self, key: str, mapping: Mapping[str, str]) -> int: ...

    async def hgetall(self, key: str) -> Dict[str, str]: ...

    async def lpush(self, key: str, *values: str) -> int: ...

    async def ltrim(self, key: str, start: int, stop: int) -> None: ...

    async def lrange(self, key: str, start: int, stop: int) -> List[str]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def redis_range(length: int, start: int, stop: int) -> Optional[slice]:
    """Translate an inclusive Redis index range into a Python slice.

    Negative indexes count from the tail. Returns None when the range is
    empty for a list of the given length.
    """
    if start < 0:
        start = max(length + start, 0)
    if stop < 0:
        stop = length + stop
    stop = min(stop, length - 1)
    if start > stop or start >= length:
        return None
    return slice(start, stop + 1)

"""Online-user tracking in the shared key-value store.

Store layout:
    online_users          set of user IDs with at least one live connection
    presence:{userId}     hash with ``lastSeen`` (epoch ms) and ``sessionId``

The set mutation and the hash update are two independent store operations.
A failure between them can leave ``lastSeen`` stale, which is tolerated.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel

from app.store import KeyValueStore

logger = logging.getLogger(__name__)


class PresenceRecord(BaseModel):
    userId: str
    online: bool
    lastSeenAt: Optional[datetime] = None


class PresenceTracker:
    """Maintains the online set and per-user last-seen records."""

    def __init__(
        self,
        store: KeyValueStore,
        online_key: str = "online_users",
        record_prefix: str = "presence:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self.online_key = online_key
        self.record_prefix = record_prefix
        self._clock = clock

    def record_key(self, user_id: str) -> str:
        return f"{self.record_prefix}{user_id}"

    def _now_ms(self) -> str:
        return str(int(self._clock() * 1000))

    async def mark_online(self, user_id: str, session_id: Optional[str] = None) -> None:
        """Add *user_id* to the online set and refresh its record. Idempotent."""
        await self._store.sadd(self.online_key, user_id)
        fields = {"lastSeen": self._now_ms()}
        if session_id:
            fields["sessionId"] = session_id
        await self._store.hset(self.record_key(user_id), fields)

    async def mark_offline(self, user_id: str) -> None:
        """Remove *user_id* from the online set; the record is kept."""
        await self._store.srem(self.online_key, user_id)
        await self.touch(user_id)

    async def touch(self, user_id: str) -> None:
        """Refresh ``lastSeen`` without changing online membership."""
        await self._store.hset(self.record_key(user_id), {"lastSeen": self._now_ms()})

    async def is_online(self, user_id: str) -> bool:
        return await self._store.sismember(self.online_key, user_id)

    async def online_users(self) -> List[str]:
        return sorted(await self._store.smembers(self.online_key))

    async def get_presence(self, user_id: str) -> PresenceRecord:
        record = await self._store.hgetall(self.record_key(user_id))
        last_seen = None
        raw = record.get("lastSeen")
        if raw:
            try:
                last_seen = datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)
            except ValueError:
                logger.warning("Unparseable lastSeen %r for user %s", raw, user_id)
        return PresenceRecord(
            userId=user_id,
            online=await self.is_online(user_id),
            lastSeenAt=last_seen,
        )

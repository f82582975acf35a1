"""Bounded recent-message history kept in a shared list.

Each chat message is pushed to the head of ``chat:history`` and the list is
trimmed to the newest N entries. Push and trim are separate store calls, so a
burst of concurrent records can briefly leave more than N entries; the next
trim restores the bound.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from app.store import KeyValueStore

from .events import MessageType, RealtimeMessage

logger = logging.getLogger(__name__)


class HistoryBuffer:
    """Most-recent-first ring of serialized chat messages."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str = "chat:history",
        size: int = 100,
    ) -> None:
        if size < 1:
            raise ValueError("History size must be at least 1")
        self._store = store
        self.key = key
        self.size = size

    async def record(self, message: RealtimeMessage) -> bool:
        """Append a chat message and trim to the newest ``size`` entries.

        Returns:
            True if recorded, False if the message type is not kept.
        """
        if message.type != MessageType.MESSAGE:
            return False
        await self._store.lpush(self.key, json.dumps(message.to_wire()))
        await self._store.ltrim(self.key, 0, self.size - 1)
        return True

    async def recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return up to *limit* messages, newest first."""
        count = self.size if limit is None else min(limit, self.size)
        if count < 1:
            return []
        raw = await self._store.lrange(self.key, 0, count - 1)
        messages = []
        for entry in raw:
            try:
                messages.append(json.loads(entry))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt history entry in %s", self.key)
        return messages

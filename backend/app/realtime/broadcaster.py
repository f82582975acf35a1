"""Connection registry and fan-out for the realtime channel.

The Broadcaster is the single handle for reaching connections. It is
constructed once when the application starts and injected into the
session orchestrator; nothing else holds a reference to live sockets.

Addressing:
    - ToUser:    every connection in the user's private channel, plus the
                 sender's own connection when echo is requested
    - ToRoom:    every member of a named room except the sender
    - Broadcast: every registered connection, sender included

Delivery is concurrent (asyncio.gather), at-most-once and best-effort.
A connection whose send fails is marked dead and its socket is closed; it
stays registered until its session closes, so per-user connection counts
keep matching the sessions that are still running.

Thread Safety:
    Designed for a single event loop. It is NOT thread-safe.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from fastapi import WebSocket

from app.auth.tokens import Identity

from .events import RealtimeMessage

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """One authenticated transport session."""
    session_id: str
    identity: Identity
    websocket: WebSocket
    rooms: Set[str] = field(default_factory=set)
    alive: bool = True

    @property
    def user_id(self) -> str:
        return self.identity.user_id


@dataclass(frozen=True)
class ToUser:
    user_id: str
    echo_sender: bool = True


@dataclass(frozen=True)
class ToRoom:
    room_id: str


@dataclass(frozen=True)
class Broadcast:
    pass


Target = Union[ToUser, ToRoom, Broadcast]


class Broadcaster:
    """Tracks live connections and their rooms, and delivers messages."""

    def __init__(self, private_room_prefix: str = "user:") -> None:
        self.private_room_prefix = private_room_prefix

        # session_id -> Connection
        self.connections: Dict[str, Connection] = {}

        # room_id -> set of session_ids
        self.rooms: Dict[str, Set[str]] = {}

    # =========================================================================
    # Registry
    # =========================================================================

    def private_room(self, user_id: str) -> str:
        """Name of the identity-scoped channel for *user_id*."""
        return f"{self.private_room_prefix}{user_id}"

    def is_private_room(self, room_id: str) -> bool:
        return room_id.startswith(self.private_room_prefix)

    def register(self, connection: Connection) -> None:
        """Add a connection and subscribe it to its private channel."""
        self.connections[connection.session_id] = connection
        self.join(connection, self.private_room(connection.user_id))
        logger.info(
            "[Broadcaster] Registered session %s for user %s (%d live)",
            connection.session_id, connection.user_id, len(self.connections),
        )

    def unregister(self, connection: Connection) -> None:
        """Remove a connection and every room membership it held."""
        for room_id in list(connection.rooms):
            self.leave(connection, room_id)
        self.connections.pop(connection.session_id, None)

    def join(self, connection: Connection, room_id: str) -> None:
        self.rooms.setdefault(room_id, set()).add(connection.session_id)
        connection.rooms.add(room_id)

    def leave(self, connection: Connection, room_id: str) -> None:
        members = self.rooms.get(room_id)
        if members is not None:
            members.discard(connection.session_id)
            if not members:
                del self.rooms[room_id]
        connection.rooms.discard(room_id)

    def room_members(self, room_id: str) -> List[Connection]:
        return [
            self.connections[sid]
            for sid in self.rooms.get(room_id, ())
            if sid in self.connections
        ]

    def connection_count(self, user_id: Optional[str] = None) -> int:
        """Number of live connections, optionally only those of *user_id*."""
        if user_id is None:
            return len(self.connections)
        return len(self.room_members(self.private_room(user_id)))

    # =========================================================================
    # Delivery
    # =========================================================================

    def resolve(
        self, target: Target, sender: Optional[Connection] = None
    ) -> List[Connection]:
        """Compute the live recipients of a delivery, each at most once."""
        if isinstance(target, ToUser):
            recipients = self.room_members(self.private_room(target.user_id))
            if target.echo_sender and sender is not None and sender not in recipients:
                recipients.append(sender)
        elif isinstance(target, ToRoom):
            recipients = [c for c in self.room_members(target.room_id) if c is not sender]
        elif isinstance(target, Broadcast):
            recipients = list(self.connections.values())
        else:
            raise TypeError(f"Unknown delivery target: {target!r}")
        return [c for c in recipients if c.alive]

    async def deliver(
        self,
        message: RealtimeMessage,
        target: Target,
        sender: Optional[Connection] = None,
    ) -> int:
        """Send *message* to every recipient of *target* concurrently.

        Returns:
            Number of recipients the message was successfully sent to.
        """
        recipients = self.resolve(target, sender)
        if not recipients:
            return 0
        return await self._fan_out(recipients, message.to_wire())

    async def send(self, connection: Connection, frame: Dict[str, Any]) -> bool:
        """Send a raw frame to a single connection (errors, replies)."""
        if not connection.alive:
            return False
        return await self._fan_out([connection], frame) == 1

    async def _fan_out(
        self, recipients: List[Connection], frame: Dict[str, Any]
    ) -> int:
        results = await asyncio.gather(
            *[self._safe_send(conn, frame) for conn in recipients],
            return_exceptions=True
        )

        failed = [
            conn for conn, success in zip(recipients, results)
            if success is not True
        ]
        await self._cleanup_connections(failed)
        return len(recipients) - len(failed)

    async def _safe_send(self, connection: Connection, frame: Dict[str, Any]) -> bool:
        """Send a frame to a WebSocket connection with error handling.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.websocket.send_json(frame)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to session {connection.session_id}: {e}")
            return False

    async def _cleanup_connections(self, failed: Iterable[Connection]) -> None:
        """Mark failed connections dead and close their sockets.

        Unregistering is left to the session that owns the connection.
        """
        for conn in failed:
            if not conn.alive:
                continue
            conn.alive = False
            try:
                await conn.websocket.close()
            except Exception as e:
                logger.debug(f"Close of dead session {conn.session_id} failed: {e}")
            logger.debug(f"Marked connection {conn.session_id} dead")

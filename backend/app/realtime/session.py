"""Session orchestrator: owns the lifecycle of each realtime connection.

State machine (per connection):

    CONNECTING ──gate accepts──▶ AUTHENTICATED ──presence + join──▶ ACTIVE
        │                              │                              │
        └──gate rejects──▶ CLOSED ◀────┴──────────disconnect──────────┘

While ACTIVE, inbound frames are parsed into one of the inbound event
models and handled by :meth:`SessionOrchestrator.dispatch`. Frames from one
connection are handled strictly in arrival order.

Presence and history writes are bookkeeping: a store failure there is logged
and never prevents delivery.

Activate and close of the same user run one at a time, so the online set
always agrees with the connections left once both have finished.
"""
import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Awaitable, Dict, Optional, Set, Union

from fastapi import WebSocket, status
from pydantic import ValidationError

from app.auth.tokens import AuthError

from .broadcaster import Broadcast, Broadcaster, Connection, Target, ToRoom, ToUser
from .events import (
    JoinRoomEvent,
    LeaveRoomEvent,
    MessageEvent,
    MessageType,
    PresenceStatus,
    RealtimeMessage,
    TypingEvent,
    error_frame,
    parse_inbound,
    presence_message,
    utcnow,
)
from .gate import ConnectionGate
from .history import HistoryBuffer
from .presence import PresenceTracker

logger = logging.getLogger(__name__)

InboundEvent = Union[MessageEvent, TypingEvent, JoinRoomEvent, LeaveRoomEvent]


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    CLOSED = "closed"


_TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.CONNECTING: {SessionState.AUTHENTICATED, SessionState.CLOSED},
    SessionState.AUTHENTICATED: {SessionState.ACTIVE, SessionState.CLOSED},
    SessionState.ACTIVE: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


class InvalidTransition(RuntimeError):
    """Raised when a session is moved along an edge the state machine lacks."""


class Session:
    """Lifecycle state of a single connection attempt."""

    def __init__(self, session_id: Optional[str] = None) -> None:
        self.session_id = session_id or str(uuid.uuid4())
        self.state = SessionState.CONNECTING
        self.connection: Optional[Connection] = None

    def transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Session {self.session_id}: {self.state.value} -> {new_state.value}"
            )
        logger.debug(
            "[WS] Session %s: %s -> %s",
            self.session_id, self.state.value, new_state.value,
        )
        self.state = new_state


class SessionOrchestrator:
    """Drives sessions through their lifecycle and dispatches inbound events."""

    def __init__(
        self,
        gate: ConnectionGate,
        broadcaster: Broadcaster,
        presence: PresenceTracker,
        history: HistoryBuffer,
    ) -> None:
        self._gate = gate
        self._broadcaster = broadcaster
        self._presence = presence
        self._history = history

        # user_id -> lock serializing that user's activate/close, and the
        # number of coroutines holding or waiting on it
        self._user_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def handle(self, websocket: WebSocket) -> Session:
        """Run one connection from handshake to close."""
        session = Session()

        try:
            identity = self._gate.authenticate(websocket)
        except AuthError as exc:
            logger.warning("[WS] Rejected connection (%s): %s", exc.reason, exc)
            session.transition(SessionState.CLOSED)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.reason)
            return session

        await websocket.accept()
        session.transition(SessionState.AUTHENTICATED)
        session.connection = Connection(
            session_id=session.session_id,
            identity=identity,
            websocket=websocket,
        )
        logger.info(
            f"[WS] Connection accepted. userId={identity.user_id}, session={session.session_id}"
        )

        try:
            await self.activate(session)
            while True:
                raw = await self._receive_frame(websocket)
                if raw is None:
                    break
                await self.handle_frame(session.connection, raw)
        finally:
            await self.close(session)
        return session

    async def activate(self, session: Session) -> None:
        """AUTHENTICATED -> ACTIVE: private channel, presence, online broadcast."""
        connection = session.connection
        async with self._user_lock(connection.user_id):
            self._broadcaster.register(connection)
            session.transition(SessionState.ACTIVE)
            await self._best_effort(
                "mark_online",
                self._presence.mark_online(connection.user_id, connection.session_id),
            )
            await self._broadcaster.deliver(
                presence_message(connection.user_id, PresenceStatus.ONLINE),
                Broadcast(),
            )

    async def close(self, session: Session) -> None:
        """-> CLOSED: drop the connection and announce departure if it was the last."""
        if session.state == SessionState.CLOSED:
            return
        session.transition(SessionState.CLOSED)
        connection = session.connection
        if connection is None:
            return

        async with self._user_lock(connection.user_id):
            self._broadcaster.unregister(connection)
            remaining = self._broadcaster.connection_count(connection.user_id)
            logger.info(
                f"[WS] Disconnected userId={connection.user_id}, session={connection.session_id}, "
                f"{remaining} other connection(s) for this user"
            )
            if remaining > 0:
                await self._best_effort("touch", self._presence.touch(connection.user_id))
                return

            await self._best_effort("mark_offline", self._presence.mark_offline(connection.user_id))
            await self._broadcaster.deliver(
                presence_message(connection.user_id, PresenceStatus.OFFLINE),
                Broadcast(),
            )

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Hold the presence lock of *user_id*; dropped once nobody needs it."""
        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._user_locks[user_id]

    # =========================================================================
    # Inbound frames
    # =========================================================================

    async def _receive_frame(self, websocket: WebSocket) -> Optional[str]:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return None
        if message.get("text") is not None:
            return message["text"]
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")

    async def handle_frame(self, connection: Connection, raw: str) -> None:
        """Decode, validate and dispatch one frame; bad frames get an error reply."""
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, RecursionError):
            await self._broadcaster.send(connection, error_frame("Invalid JSON"))
            return

        try:
            event = parse_inbound(data)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            detail = f"{location}: {first['msg']}" if location else first["msg"]
            await self._broadcaster.send(
                connection, error_frame(f"Invalid event format: {detail}")
            )
            return

        await self.dispatch(connection, event)

    async def dispatch(self, connection: Connection, event: InboundEvent) -> None:
        if isinstance(event, MessageEvent):
            await self._on_message(connection, event)
        elif isinstance(event, TypingEvent):
            await self._on_typing(connection, event)
        elif isinstance(event, JoinRoomEvent):
            await self._on_join_room(connection, event)
        elif isinstance(event, LeaveRoomEvent):
            await self._on_leave_room(connection, event)
        else:
            raise TypeError(f"Unhandled inbound event: {event!r}")

    async def _on_message(self, connection: Connection, event: MessageEvent) -> None:
        now = utcnow()
        payload = {
            "from": connection.user_id,
            "content": event.content,
            "timestamp": now.isoformat(),
        }
        target: Target
        if event.to:
            payload["to"] = event.to
            target = ToUser(event.to)
        elif event.room:
            payload["room"] = event.room
            target = ToRoom(event.room)
        else:
            target = Broadcast()

        message = RealtimeMessage(
            type=MessageType.MESSAGE,
            payload=payload,
            userId=connection.user_id,
            timestamp=now,
        )
        delivered = await self._broadcaster.deliver(message, target, sender=connection)
        logger.info(f"[WS] Message from {connection.user_id} delivered to {delivered} connection(s)")

        # Recorded after delivery; a failed write does not undo the send
        await self._best_effort("history record", self._history.record(message))

    async def _on_typing(self, connection: Connection, event: TypingEvent) -> None:
        if event.to:
            target: Target = ToUser(event.to, echo_sender=False)
        elif event.room:
            target = ToRoom(event.room)
        else:
            logger.debug("[WS] Typing event without a target from %s ignored", connection.user_id)
            return

        await self._broadcaster.deliver(
            RealtimeMessage(
                type=MessageType.TYPING,
                payload={"userId": connection.user_id, "isTyping": event.isTyping},
                userId=connection.user_id,
            ),
            target,
            sender=connection,
        )

    async def _on_join_room(self, connection: Connection, event: JoinRoomEvent) -> None:
        if self._broadcaster.is_private_room(event.roomId):
            await self._broadcaster.send(connection, error_frame("Room name is reserved"))
            return
        self._broadcaster.join(connection, event.roomId)
        logger.info(f"[WS] {connection.user_id} joined room {event.roomId}")
        await self._notify_room(connection, event.roomId, "joined")

    async def _on_leave_room(self, connection: Connection, event: LeaveRoomEvent) -> None:
        if self._broadcaster.is_private_room(event.roomId):
            await self._broadcaster.send(connection, error_frame("Room name is reserved"))
            return
        self._broadcaster.leave(connection, event.roomId)
        logger.info(f"[WS] {connection.user_id} left room {event.roomId}")
        await self._notify_room(connection, event.roomId, "left")

    async def _notify_room(self, connection: Connection, room_id: str, action: str) -> None:
        await self._broadcaster.deliver(
            RealtimeMessage(
                type=MessageType.NOTIFICATION,
                payload={
                    "message": f"User {connection.user_id} {action} the room",
                    "roomId": room_id,
                    "userId": connection.user_id,
                },
            ),
            ToRoom(room_id),
            sender=connection,
        )

    async def _best_effort(self, label: str, operation: Awaitable) -> None:
        try:
            await operation
        except Exception as e:
            logger.error(f"[WS] {label} failed, continuing: {e}")

"""Realtime messaging layer: authenticated WebSocket sessions with presence,
room/user addressing and a bounded history buffer.

Components:
    - ConnectionGate: token check on the handshake
    - Broadcaster: connection registry and fan-out
    - PresenceTracker: online set and last-seen records
    - HistoryBuffer: newest-N chat messages
    - SessionOrchestrator: connection lifecycle and event dispatch
"""
from dataclasses import dataclass

from app.auth.tokens import TokenVerifier
from app.config import AppConfig
from app.store import KeyValueStore

from .broadcaster import Broadcaster
from .gate import ConnectionGate
from .history import HistoryBuffer
from .presence import PresenceTracker
from .session import SessionOrchestrator


@dataclass
class RealtimeServices:
    """Process-wide realtime components, built once at startup."""
    store: KeyValueStore
    verifier: TokenVerifier
    broadcaster: Broadcaster
    presence: PresenceTracker
    history: HistoryBuffer
    orchestrator: SessionOrchestrator


def build_realtime(config: AppConfig, store: KeyValueStore) -> RealtimeServices:
    rt = config.realtime
    verifier = TokenVerifier.from_config(config)
    broadcaster = Broadcaster(private_room_prefix=rt.private_room_prefix)
    presence = PresenceTracker(
        store,
        online_key=rt.online_set_key,
        record_prefix=rt.presence_key_prefix,
    )
    history = HistoryBuffer(store, key=rt.history_key, size=rt.history_size)
    orchestrator = SessionOrchestrator(
        gate=ConnectionGate(verifier),
        broadcaster=broadcaster,
        presence=presence,
        history=history,
    )
    return RealtimeServices(
        store=store,
        verifier=verifier,
        broadcaster=broadcaster,
        presence=presence,
        history=history,
        orchestrator=orchestrator,
    )

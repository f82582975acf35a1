"""Realtime router providing the WebSocket channel and read-only HTTP views.

This module provides:
    - WebSocket /ws: authenticated realtime channel
    - GET /chat/history: recent chat messages, newest first
    - GET /presence/online: user IDs currently online
    - GET /presence/{user_id}: presence record for one user

WebSocket protocol:
    1. Client connects with ``Authorization: Bearer <jwt>`` or ``?token=<jwt>``
       → rejected with close code 1008 if the token is missing or invalid
       → on success every client receives {type: "presence", payload:
         {userId, status: "online"}}
    2. Client sends {type: "message", to?, room?, content}
       → delivered to the user (echoed to sender), the room (not the
         sender), or everyone; recorded in history
    3. Client sends {type: "typing", to?, room?, isTyping}
    4. Client sends {type: "join_room" | "leave_room", roomId}
       → the rest of the room receives a notification
    5. On disconnect → {type: "presence", payload: {userId, status: "offline"}}
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket

from app.auth.tokens import Identity
from app.dependencies import get_current_identity, get_services

from . import RealtimeServices
from .presence import PresenceRecord

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_PAGE_SIZE = 50


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for the realtime channel.

    The orchestrator owns the whole lifecycle: authentication, presence,
    dispatch of inbound events and departure on disconnect.
    """
    services: RealtimeServices = websocket.app.state.realtime
    await services.orchestrator.handle(websocket)


@router.get("/chat/history", tags=["chat"])
async def get_chat_history(
    limit: Optional[int] = Query(None, ge=1, description="Number of messages to return"),
    identity: Identity = Depends(get_current_identity),
    services: RealtimeServices = Depends(get_services),
) -> dict:
    """Return recent chat messages, newest first.

    ``limit`` may not exceed the configured history size; it defaults to
    the smaller of 50 and that size.
    """
    size = services.history.size
    if limit is None:
        limit = min(DEFAULT_PAGE_SIZE, size)
    elif limit > size:
        raise HTTPException(
            status_code=422,
            detail=f"limit must be between 1 and {size}",
        )
    messages = await services.history.recent(limit)
    return {"messages": messages}


@router.get("/presence/online", tags=["presence"])
async def list_online_users(
    identity: Identity = Depends(get_current_identity),
    services: RealtimeServices = Depends(get_services),
) -> dict:
    return {"users": await services.presence.online_users()}


@router.get("/presence/{user_id}", response_model=PresenceRecord, tags=["presence"])
async def get_user_presence(
    user_id: str,
    identity: Identity = Depends(get_current_identity),
    services: RealtimeServices = Depends(get_services),
) -> PresenceRecord:
    return await services.presence.get_presence(user_id)

# food_ordering/routers/realtime.py
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from food_ordering.core.database import get_session_factory
from food_ordering.core.errors import UnauthorizedError
from food_ordering.deps import authenticate_token
from food_ordering.models.user import User
from food_ordering.services.channel_access import can_join_channel
from food_ordering.services.notifications import ChannelHub, Subscription

router = APIRouter(tags=["realtime"])

logger = logging.getLogger(__name__)


def _authenticate(session_factory, token: Optional[str]) -> int:
    db = session_factory()
    try:
        return authenticate_token(db, token).id
    finally:
        db.close()


def _may_join(session_factory, user_id: int, channel: str) -> bool:
    db = session_factory()
    try:
        user = db.get(User, user_id)
        if not user or not user.is_active:
            return False
        return can_join_channel(db, user, channel)
    finally:
        db.close()


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        message = await subscription.next_message()
        await websocket.send_json(message)


async def _handle_action(
    hub: ChannelHub,
    subscription: Subscription,
    session_factory,
    user_id: int,
    raw: str,
) -> dict[str, Any]:
    try:
        message = json.loads(raw)
    except ValueError:
        return {"type": "error", "message": "Invalid JSON"}
    if not isinstance(message, dict):
        return {"type": "error", "message": "Invalid message"}

    action = message.get("action")
    channel = message.get("channel")
    if action not in {"join", "leave"} or not isinstance(channel, str):
        return {"type": "error", "message": "Expected {\"action\": \"join\"|\"leave\", \"channel\": \"...\"}"}

    if action == "leave":
        hub.leave(subscription, channel)
        return {"type": "left", "channel": channel}

    allowed = await run_in_threadpool(_may_join, session_factory, user_id, channel)
    if not allowed:
        logger.info("Channel join rejected user_id=%s", user_id, extra={"channel": channel})
        return {"type": "error", "channel": channel, "message": "Not allowed to join this channel"}
    hub.join(subscription, channel)
    return {"type": "joined", "channel": channel}


@router.websocket("/ws/notifications")
async def notifications_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    session_factory=Depends(get_session_factory),
):
    try:
        user_id = await run_in_threadpool(_authenticate, session_factory, token)
    except UnauthorizedError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub: ChannelHub = websocket.app.state.hub
    await websocket.accept()
    subscription = hub.subscribe()
    forwarder = asyncio.create_task(_forward_events(websocket, subscription))
    logger.info("Realtime client connected user_id=%s", user_id)

    try:
        while True:
            raw = await websocket.receive_text()
            reply = await _handle_action(hub, subscription, session_factory, user_id, raw)
            await websocket.send_json(reply)
    except WebSocketDisconnect:
        logger.info("Realtime client disconnected user_id=%s", user_id)
    finally:
        forwarder.cancel()
        hub.unsubscribe(subscription)

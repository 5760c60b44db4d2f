"""
Realtime Channel

WebSocket endpoint for the admin dashboard.

Protocol:
- client -> server: {"event": "join_admin"} (or the bare text "join_admin")
- server -> client: {"event": "init_visitors", "data": [...]} once, then
  {"event": "new_visitor" | "location_updated", "data": {...}} as they happen

Joining requires the admin cookie or ?password=; an unauthorized join closes
the socket with code 1008 (policy violation).
"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from visitor_tracker.api.schemas import visitor_payload
from visitor_tracker.core.admin_auth import authenticate
from visitor_tracker.core.setting import settings
from visitor_tracker.services.broadcaster import Broadcaster
from visitor_tracker.services.visitor_service import VisitorService

logger = logging.getLogger(__name__)

router = APIRouter()

JOIN_ADMIN = "join_admin"


def parse_client_event(message: str) -> str:
    """Event name of a client message; empty string if unrecognized."""
    message = message.strip()
    if message == JOIN_ADMIN:
        return JOIN_ADMIN
    try:
        data = json.loads(message)
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("event", ""))
    return ""


async def load_backfill(websocket: WebSocket, limit: int) -> list:
    async with websocket.app.state.session_factory() as session:
        visitors = await VisitorService(session).recent(limit=limit)
        return [visitor_payload(visitor) for visitor in visitors]


@router.websocket("/ws")
async def realtime_channel(websocket: WebSocket):
    broadcaster: Broadcaster = websocket.app.state.broadcaster
    await websocket.accept()

    try:
        while True:
            event = parse_client_event(await websocket.receive_text())

            if event != JOIN_ADMIN:
                logger.debug(f"Ignoring realtime message with event {event!r}")
                continue
            if broadcaster.is_subscribed(websocket):
                continue

            if not authenticate(websocket):
                logger.warning("Rejected unauthenticated join_admin")
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return

            await broadcaster.join_admin(
                websocket, lambda: load_backfill(websocket, settings.BACKFILL_LIMIT)
            )
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.leave(websocket)

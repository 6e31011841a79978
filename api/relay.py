"""
WebSocket relay for matched rooms.

Handles:
- join_room / leave_room
- chat messages (rate limited and sanitized)
- typing / stop_typing fan-out
- disconnect: notify joined rooms and clean up the identity
"""
import logging
import time
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from api.auth import Identity, verify_token
from core.entities import ANONYMOUS_DISPLAY_NAME
from utils.content_filter import sanitize_message

logger = logging.getLogger(__name__)

router = APIRouter()

ENDED = {"type": "ended"}


async def _display_name(services, identity: Identity) -> str:
    try:
        return await services.repository.get_display_name(identity.identity_id)
    except Exception as e:
        logger.warning(f"Could not load display name of {identity.identity_id}: {e}")
        return ANONYMOUS_DISPLAY_NAME


async def handle_event(
    services,
    websocket: WebSocket,
    connection_id: str,
    identity: Identity,
    display_name: str,
    event,
) -> None:
    """Apply one client event. Unknown or incomplete events are ignored."""
    if not isinstance(event, dict):
        logger.debug(f"Ignoring non-object frame from {identity.identity_id}")
        return

    event_type = event.get("type")
    room_id = event.get("roomId")
    if not room_id or not isinstance(room_id, str):
        logger.debug(f"Ignoring {event_type} without roomId from {identity.identity_id}")
        return

    hub = services.hub
    if event_type == "join_room":
        hub.join(room_id, connection_id, websocket)
        logger.info(f"{identity.identity_id} joined room {room_id}")

    elif event_type == "message":
        text = event.get("text")
        if not text or not isinstance(text, str):
            return
        allowed, _ = await services.rate_limiter.check_message_limit(identity.identity_id)
        if not allowed:
            logger.info(f"Rate limit hit for {identity.identity_id}")
            return
        await hub.broadcast(room_id, {
            "type": "message",
            "text": sanitize_message(text, services.settings.MAX_MESSAGE_LENGTH),
            "authorId": identity.identity_id,
            "displayName": display_name,
            "at": int(time.time() * 1000),
        })

    elif event_type in ("typing", "stop_typing"):
        await hub.broadcast(room_id, {"type": event_type}, exclude=connection_id)

    elif event_type == "leave_room":
        hub.leave(room_id, connection_id)
        await hub.broadcast(room_id, ENDED)
        await services.lifecycle.cleanup(identity.identity_id)
        logger.info(f"{identity.identity_id} left room {room_id}")

    else:
        logger.debug(f"Ignoring unknown event {event_type!r} from {identity.identity_id}")


@router.websocket("/ws")
async def relay_endpoint(websocket: WebSocket, token: Optional[str] = None):
    """
    WebSocket endpoint for room chat.

    Args:
        websocket: Client connection
        token: Account or guest identity token
    """
    await websocket.accept()

    try:
        identity = verify_token(token or "")
    except HTTPException as e:
        await websocket.close(code=1008, reason=e.detail)
        return

    services = websocket.app.state.services
    connection_id = uuid.uuid4().hex
    display_name = await _display_name(services, identity)
    logger.info(f"Relay connection {connection_id} opened for {identity.identity_id}")

    try:
        while True:
            try:
                event = await websocket.receive_json()
            except ValueError as e:
                logger.debug(f"Ignoring malformed frame from {identity.identity_id}: {e}")
                continue
            try:
                await handle_event(services, websocket, connection_id, identity, display_name, event)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(f"Relay error for {identity.identity_id}: {e}", exc_info=True)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for {identity.identity_id}: {e}", exc_info=True)
    finally:
        for room_id in services.hub.drop(connection_id):
            await services.hub.broadcast(room_id, ENDED)
        await services.lifecycle.cleanup(identity.identity_id, clear_presence=True)
        logger.info(f"Relay connection {connection_id} closed for {identity.identity_id}")

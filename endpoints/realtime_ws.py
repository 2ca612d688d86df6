from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, status
from pydantic import ValidationError
from datetime import datetime, timezone
from typing import Any, Dict
import json
import logging

from hub import NotificationHub, get_hub
from realtime import Connection, WebSocketHandle, parse_user_id
from schemas.realtime import (
    CONNECTION_SUCCESS, ERROR, MESSAGE_READ, PING, PONG,
    ConnectionSuccess, Envelope, ErrorEvent, MessageReadSignal, Pong,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _send_error(connection: Connection, message: str):
    try:
        await connection.handle.send(ERROR, ErrorEvent(message=message).model_dump())
    except Exception:
        logger.warning("Could not deliver error event to user %s", connection.user_id, exc_info=True)


async def _on_message_read(hub: NotificationHub, connection: Connection, data: Dict[str, Any]):
    try:
        signal = MessageReadSignal.model_validate(data)
    except ValidationError:
        logger.error("Invalid message_read from user %s: %s", connection.user_id, data)
        await _send_error(connection, "Invalid data")
        return
    if not await hub.store.is_available():
        logger.warning("Storage unavailable; message_read from user %s not processed", connection.user_id)
        await _send_error(connection, "Service temporarily unavailable")
        return
    result = await hub.receipts.process(signal)
    if result.failed:
        await _send_error(connection, "Failed to process read receipt")


async def _on_ping(connection: Connection):
    now = datetime.now(timezone.utc)
    pong = Pong(timestamp=now, server_time=now, user_id=connection.user_id)
    await connection.handle.send(PONG, pong.model_dump())


async def handle_frame(hub: NotificationHub, connection: Connection, raw: str):
    try:
        envelope = Envelope.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        await _send_error(connection, "Malformed frame")
        return
    if envelope.event == MESSAGE_READ:
        await _on_message_read(hub, connection, envelope.data)
    elif envelope.event == PING:
        await _on_ping(connection)
    else:
        logger.debug("Ignoring unsupported event %s from user %s", envelope.event, connection.user_id)


@router.websocket("/ws")
async def realtime_ws(websocket: WebSocket, hub: NotificationHub = Depends(get_hub)):
    user_id = parse_user_id(websocket.query_params.get("userId"))
    if user_id is None:
        logger.warning("Connection without a valid userId refused")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    handle = WebSocketHandle(websocket)
    connection = hub.registry.register(user_id, handle)
    client = websocket.client.host if websocket.client else "unknown"
    logger.info("User %s connected from %s", user_id, client)

    reason = "server closed"
    try:
        now = datetime.now(timezone.utc)
        ack = ConnectionSuccess(user_id=user_id, connected_at=connection.connected_at, server_time=now)
        await handle.send(CONNECTION_SUCCESS, ack.model_dump())
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE), message.get("reason"))
            if message.get("text") is not None:
                await handle_frame(hub, connection, message["text"])
            else:
                # binary frames are not part of the protocol
                await _send_error(connection, "Malformed frame")
    except WebSocketDisconnect as e:
        reason = e.reason or f"code {e.code}"
    except Exception:
        logger.exception("Socket error for user %s", user_id)
        reason = "transport error"
    finally:
        hub.registry.unregister(user_id, handle)
        hub.registry.release(handle)
        logger.info("User %s disconnected. Reason: %s", user_id, reason)

"""Live-update socket: authenticates the handshake and gates list rooms."""

import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from . import schemas
from .access import check_access
from .auth_utils import user_from_token
from .broadcaster import manager
from .database import AsyncSessionLocal
from .errors import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()


async def _reject(websocket: WebSocket, message: str, list_id: Optional[int] = None):
    await manager.send(
        websocket,
        "list:error",
        schemas.RoomErrorData(listId=list_id, message=message).model_dump(),
    )


async def join_room(websocket: WebSocket, user_id: int, list_id: int):
    async with AsyncSessionLocal() as db:
        try:
            await check_access(db, user_id, list_id)
        except ApiError as e:
            logger.info("User %s denied room for list %s: %s", user_id, list_id, e.message)
            await _reject(websocket, e.message, list_id)
            return

    manager.join(list_id, websocket, user_id)
    await manager.send(
        websocket, "list:joined", schemas.RoomAckData(listId=list_id).model_dump()
    )


async def leave_room(websocket: WebSocket, list_id: int):
    manager.leave(list_id, websocket)
    await manager.send(
        websocket, "list:left", schemas.RoomAckData(listId=list_id).model_dump()
    )


@router.websocket("/ws")
async def live_updates(websocket: WebSocket, token: Optional[str] = None):
    async with AsyncSessionLocal() as db:
        try:
            user = await user_from_token(token, db)
        except ApiError as e:
            logger.info("Rejected live-update handshake: %s", e.code)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()
    logger.info("Live-update connection opened for user %s", user.id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = schemas.RoomMessage.model_validate_json(raw)
            except PydanticValidationError:
                await _reject(websocket, "Malformed message")
                continue

            if message.event == "list:join":
                await join_room(websocket, user.id, message.data)
            else:
                await leave_room(websocket, message.data)

    except WebSocketDisconnect:
        logger.info("Live-update connection closed for user %s", user.id)
    finally:
        manager.disconnect(websocket)

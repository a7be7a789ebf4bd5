"""Fan-out of list-item events to live-update subscribers."""

import logging
from typing import Any, Optional

from fastapi import WebSocket

from . import schemas

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        # list_id -> connections subscribed to that list
        self.rooms: dict[int, set[WebSocket]] = {}
        # connection -> id of the user it authenticated as
        self.users: dict[WebSocket, int] = {}

    def join(self, list_id: int, websocket: WebSocket, user_id: Optional[int] = None):
        self.rooms.setdefault(list_id, set()).add(websocket)
        if user_id is not None:
            self.users[websocket] = user_id
        logger.info("WebSocket joined list %s", list_id)

    def leave(self, list_id: int, websocket: WebSocket):
        room = self.rooms.get(list_id)
        if room is None:
            return
        room.discard(websocket)
        if not room:
            del self.rooms[list_id]
        logger.info("WebSocket left list %s", list_id)

    def disconnect(self, websocket: WebSocket):
        for list_id in [lid for lid, room in self.rooms.items() if websocket in room]:
            self.leave(list_id, websocket)
        self.users.pop(websocket, None)

    def evict(self, list_id: int, user_id: int) -> int:
        """Remove every connection of ``user_id`` from the list's room."""
        room = self.rooms.get(list_id, set())
        evicted = [ws for ws in room if self.users.get(ws) == user_id]
        for websocket in evicted:
            self.leave(list_id, websocket)
        return len(evicted)

    def drop_room(self, list_id: int):
        if self.rooms.pop(list_id, None) is not None:
            logger.info("Closed room for deleted list %s", list_id)

    def subscribers(self, list_id: int) -> int:
        return len(self.rooms.get(list_id, ()))

    async def send(self, websocket: WebSocket, event: str, data: Any) -> bool:
        try:
            await websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.warning("Error sending %s to websocket: %s", event, e)
            return False

    async def broadcast(self, list_id: int, event: schemas.ListEvent):
        """Deliver ``event`` to every connection in the list's room.

        Includes the connection that caused the mutation. Delivery is best
        effort: a failing connection is dropped and never reported back.
        """
        room = self.rooms.get(list_id)
        if not room:
            return

        message = event.model_dump(mode="json")
        for websocket in list(room):
            delivered = await self.send(websocket, message["event"], message["data"])
            if not delivered:
                self.disconnect(websocket)


manager = ConnectionManager()


async def publish(list_id: int, *events: schemas.ListEvent):
    for event in events:
        await manager.broadcast(list_id, event)

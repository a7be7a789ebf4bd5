from datetime import datetime

import pytest
from pydantic import TypeAdapter

from listsync import schemas
from listsync.broadcaster import ConnectionManager


class FakeWebSocket:
    def __init__(self, broken=False):
        self.broken = broken
        self.sent = []

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("connection reset")
        self.sent.append(message)


def removed_event(list_id, list_item_id):
    return schemas.ItemRemovedEvent(
        data=schemas.ItemRemovedData(listId=list_id, listItemId=list_item_id)
    )


@pytest.mark.asyncio
async def test_broadcast_reaches_every_member_of_the_room():
    manager = ConnectionManager()
    first, second, outsider = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    manager.join(7, first)
    manager.join(7, second)
    manager.join(8, outsider)

    await manager.broadcast(7, removed_event(7, 3))

    expected = {"event": "list:item-removed", "data": {"listId": 7, "listItemId": 3}}
    assert first.sent == [expected]
    assert second.sent == [expected]
    assert outsider.sent == []


@pytest.mark.asyncio
async def test_failed_delivery_drops_connection_silently():
    manager = ConnectionManager()
    healthy, broken = FakeWebSocket(), FakeWebSocket(broken=True)
    manager.join(7, healthy)
    manager.join(7, broken)
    manager.join(9, broken)

    await manager.broadcast(7, removed_event(7, 1))

    assert len(healthy.sent) == 1
    assert manager.subscribers(7) == 1
    assert manager.subscribers(9) == 0


@pytest.mark.asyncio
async def test_broadcast_to_empty_room_is_noop():
    manager = ConnectionManager()
    await manager.broadcast(42, removed_event(42, 1))
    assert manager.rooms == {}


@pytest.mark.asyncio
async def test_checked_event_serializes_timestamp():
    manager = ConnectionManager()
    socket = FakeWebSocket()
    manager.join(1, socket)
    event = schemas.ItemCheckedEvent(
        data=schemas.ItemCheckedData(
            listId=1,
            listItemId=2,
            is_checked=True,
            checked_at=datetime(2024, 5, 1, 12, 30),
        )
    )

    await manager.broadcast(1, event)

    assert socket.sent[0]["data"]["checked_at"] == "2024-05-01T12:30:00"


def test_disconnect_leaves_every_room():
    manager = ConnectionManager()
    socket = FakeWebSocket()
    manager.join(1, socket)
    manager.join(2, socket)

    manager.disconnect(socket)

    assert manager.rooms == {}


def test_event_union_is_discriminated_by_name():
    adapter = TypeAdapter(schemas.ListEvent)
    event = adapter.validate_python(
        {"event": "list:item-removed", "data": {"listId": 1, "listItemId": 5}}
    )
    assert isinstance(event, schemas.ItemRemovedEvent)


def test_evict_removes_only_that_users_connections():
    manager = ConnectionManager()
    bob_phone, bob_laptop, alice = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    manager.join(3, bob_phone, user_id=2)
    manager.join(3, bob_laptop, user_id=2)
    manager.join(3, alice, user_id=1)
    manager.join(4, bob_phone, user_id=2)

    assert manager.evict(3, 2) == 2

    assert manager.rooms == {3: {alice}, 4: {bob_phone}}


def test_drop_room_forgets_every_subscriber():
    manager = ConnectionManager()
    manager.join(5, FakeWebSocket(), user_id=1)

    manager.drop_room(5)
    manager.drop_room(5)

    assert manager.subscribers(5) == 0

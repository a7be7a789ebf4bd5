import httpx
import pytest
from starlette import status

from listsync import mutations
from listsync.main import app


@pytest.fixture
def milk(client, auth_headers, list_id, category_id):
    response = client.post(
        f"/lists/{list_id}/items",
        headers=auth_headers,
        json={"name": "milk", "category_id": category_id()},
    )
    return response.json()


def test_sql_injection_payload_as_data(client, auth_headers, list_id, category_id):
    payload = "'; DROP TABLE list_items; --"
    response = client.post(
        f"/lists/{list_id}/items",
        headers=auth_headers,
        json={"name": payload, "category_id": category_id()},
    )
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["item"]["name"] == payload


def test_stranger_cannot_touch_list(client, bob_headers, list_id, milk, make_item):
    item_url = f"/lists/{list_id}/items/{milk['id']}"
    attempts = [
        client.get(f"/lists/{list_id}", headers=bob_headers),
        client.post(
            f"/lists/{list_id}/items",
            headers=bob_headers,
            json={"name": "eggs", "category_id": milk["category"]["id"]},
        ),
        client.post(
            f"/lists/{list_id}/items/batch",
            headers=bob_headers,
            json={"items": [{"item_id": make_item("Apples")}]},
        ),
        client.post(f"/lists/{list_id}/menus/1/add", headers=bob_headers),
        client.patch(item_url, headers=bob_headers, json={"is_checked": True}),
        client.delete(item_url, headers=bob_headers),
        client.delete(f"/lists/{list_id}/items/checked", headers=bob_headers),
    ]

    for response in attempts:
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"]["code"] == "forbidden"


def test_view_share_is_read_only(client, bob_headers, list_id, milk, share):
    share(list_id, "bob", permission="view")

    snapshot = client.get(f"/lists/{list_id}", headers=bob_headers)
    toggle = client.patch(
        f"/lists/{list_id}/items/{milk['id']}",
        headers=bob_headers,
        json={"is_checked": True},
    )

    assert snapshot.status_code == status.HTTP_200_OK
    assert snapshot.json()["is_owner"] is False
    assert toggle.status_code == status.HTTP_403_FORBIDDEN
    assert toggle.json()["error"]["code"] == "edit_required"


def test_edit_share_can_mutate(client, bob_headers, list_id, milk, share):
    share(list_id, "bob", permission="edit")

    response = client.patch(
        f"/lists/{list_id}/items/{milk['id']}",
        headers=bob_headers,
        json={"is_checked": True},
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["is_checked"] is True


def test_mutation_on_missing_list(client, auth_headers, category_id):
    response = client.post(
        "/lists/4040/items",
        headers=auth_headers,
        json={"name": "milk", "category_id": category_id()},
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_only_owner_can_share(client, bob_headers, list_id, share):
    share(list_id, "bob", permission="edit")

    response = client.post(
        f"/lists/{list_id}/shares",
        headers=bob_headers,
        json={"username": "alice", "permission": "edit"},
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_internal_errors_do_not_leak(client, auth_headers, list_id, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("secret connection string")

    monkeypatch.setattr(mutations, "clear_checked", broken)

    async def call():
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(
            transport=transport, base_url="http://testserver"
        ) as async_client:
            return await async_client.delete(
                f"/lists/{list_id}/items/checked", headers=auth_headers
            )

    response = client.portal.call(call)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {
        "error": {"code": "internal_error", "message": "Internal server error"}
    }
    assert "secret" not in response.text

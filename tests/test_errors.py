from starlette import status


def test_not_found_list(client, auth_headers):
    """Unified 404 body for a list that does not exist."""
    r = client.get("/lists/999", headers=auth_headers)

    assert r.status_code == status.HTTP_404_NOT_FOUND
    body = r.json()

    assert "error" in body
    assert body["error"] == {"code": "not_found", "message": "List not found"}


def test_validation_error(client, auth_headers):
    """Pydantic failures come back as a 400 with the unified body."""
    r = client.post("/lists", headers=auth_headers, json={"name": ""})

    assert r.status_code == status.HTTP_400_BAD_REQUEST
    body = r.json()
    assert "error" in body
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["message"].startswith("name:")


def test_conflict_error_body(client, auth_headers, list_id, category_id):
    payload = {"name": "milk", "category_id": category_id()}
    client.post(f"/lists/{list_id}/items", headers=auth_headers, json=payload)

    r = client.post(f"/lists/{list_id}/items", headers=auth_headers, json=payload)

    assert r.status_code == status.HTTP_409_CONFLICT
    assert r.json() == {
        "error": {"code": "conflict", "message": "Item already on this list"}
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}

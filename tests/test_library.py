from starlette import status


def names(response):
    return [(row["name"], row["created_by"]) for row in response.json()]


def test_library_lists_system_and_own_items(
    client, auth_headers, make_item, user_id
):
    alice = user_id("alice")
    make_item("Bread")
    make_item("apples", category="Produce")
    make_item("cheddar", owner=alice)

    response = client.get("/items", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert names(response) == [("apples", None), ("Bread", None), ("cheddar", alice)]
    apples = response.json()[0]
    assert apples["category"]["name"] == "Produce"


def test_own_item_shadows_system_item(client, auth_headers, make_item, user_id):
    alice = user_id("alice")
    make_item("Milk")
    own = make_item("milk", owner=alice)

    body = client.get("/items", headers=auth_headers).json()

    assert [(row["id"], row["created_by"]) for row in body] == [(own, alice)]


def test_library_hides_other_users_items(
    client, auth_headers, bob_headers, make_item, user_id
):
    make_item("Milk")
    make_item("milk", owner=user_id("bob"))

    assert names(client.get("/items", headers=auth_headers)) == [("Milk", None)]
    assert names(client.get("/items", headers=bob_headers)) == [
        ("milk", user_id("bob"))
    ]


def test_library_search(client, auth_headers, make_item):
    make_item("Oat milk")
    make_item("Milk")
    make_item("Butter")

    response = client.get("/items", params={"search": "MILK"}, headers=auth_headers)

    assert names(response) == [("Milk", None), ("Oat milk", None)]


def test_adding_by_name_appears_in_library(
    client, auth_headers, list_id, category_id, user_id
):
    client.post(
        f"/lists/{list_id}/items",
        headers=auth_headers,
        json={"name": "tahini", "category_id": category_id()},
    )

    assert names(client.get("/items", headers=auth_headers)) == [
        ("tahini", user_id("alice"))
    ]


def test_library_requires_auth(client):
    response = client.get("/items")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

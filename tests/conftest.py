import os
import tempfile

# Must be set before listsync is imported: config is read at import time.
_db_dir = tempfile.mkdtemp(prefix="listsync-tests-")
os.environ["LISTSYNC_DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}"
)
os.environ["JWT_SECRET_KEY"] = "test-very-secure-jwt-secret-key"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import select  # noqa: E402
from starlette import status  # noqa: E402

from listsync import models  # noqa: E402
from listsync.broadcaster import manager  # noqa: E402
from listsync.database import AsyncSessionLocal, drop_db  # noqa: E402
from listsync.main import app  # noqa: E402


@pytest.fixture
def client():
    """App client sharing one event loop with the DB helpers below."""
    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(drop_db)
    manager.rooms.clear()
    manager.users.clear()


def login(client, username, password="securepassword"):
    client.post("/register", json={"username": username, "password": password})
    response = client.post("/login", data={"username": username, "password": password})
    if response.status_code != status.HTTP_200_OK:
        pytest.fail(f"Auth setup failed: {response.status_code} - {response.text}")
    return response.json()["access_token"]


@pytest.fixture
def alice_token(client):
    return login(client, "alice")


@pytest.fixture
def bob_token(client):
    return login(client, "bob")


@pytest.fixture
def auth_headers(alice_token):
    return {"Authorization": f"Bearer {alice_token}"}


@pytest.fixture
def bob_headers(bob_token):
    return {"Authorization": f"Bearer {bob_token}"}


@pytest.fixture
def list_id(client, auth_headers):
    response = client.post("/lists", headers=auth_headers, json={"name": "Groceries"})
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


@pytest.fixture
def run_db(client):
    """Run ``fn(session, *args)`` on the app's event loop and return its result."""

    async def _call(fn, args):
        async with AsyncSessionLocal() as session:
            return await fn(session, *args)

    def _run(fn, *args):
        return client.portal.call(_call, fn, args)

    return _run


async def _category_id(session, name):
    result = await session.execute(
        select(models.Category.id).where(models.Category.name == name)
    )
    return result.scalar_one()


async def _user_id(session, username):
    result = await session.execute(
        select(models.User.id).where(models.User.username == username)
    )
    return result.scalar_one()


async def _create_item(session, name, category_id, created_by):
    item = models.Item(name=name, category_id=category_id, created_by=created_by)
    session.add(item)
    await session.commit()
    return item.id


@pytest.fixture
def category_id(run_db):
    def _lookup(name="Dairy"):
        return run_db(_category_id, name)

    return _lookup


@pytest.fixture
def user_id(run_db):
    def _lookup(username):
        return run_db(_user_id, username)

    return _lookup


@pytest.fixture
def make_item(run_db, category_id):
    """Insert a library item directly; ``owner=None`` makes a system item."""

    def _make(name, owner=None, category="Dairy"):
        return run_db(_create_item, name, category_id(category), owner)

    return _make


@pytest.fixture
def share(client, auth_headers):
    def _share(target_list, username, permission="edit"):
        response = client.post(
            f"/lists/{target_list}/shares",
            headers=auth_headers,
            json={"username": username, "permission": permission},
        )
        assert response.status_code == status.HTTP_201_CREATED
        return response.json()

    return _share

"""Pytest configuration and fixtures."""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from src.main import app
from src.services.task_store import TaskStore

DEFAULT_PASSWORD = "testpass123"


class AuthHeaders(dict):
    """Dict subclass that also stores the user's id and email."""

    def __init__(self, *args, user_id: int | None = None, email: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = user_id
        self.email = email


@pytest.fixture
def database_url(tmp_path):
    """File-backed SQLite database, fresh for every test."""
    return f"sqlite:///{tmp_path / 'tasks.db'}"


@pytest_asyncio.fixture
async def store(database_url):
    """Initialized task store on the per-test database."""
    task_store = TaskStore.from_url(database_url)
    await task_store.initialize()
    yield task_store
    task_store.close()


@pytest.fixture
def client(database_url):
    """Create a test client bound to the per-test database."""
    app.state.store = TaskStore.from_url(database_url)
    with TestClient(app) as test_client:
        yield test_client
    app.state.store.close()
    del app.state.store


def register_user(client, name: str, email: str, password: str = DEFAULT_PASSWORD) -> AuthHeaders:
    """Register a user through the API and return auth headers for them."""
    response = client.post(
        "/api/v1/auth/register",
        json={
            "name": name,
            "email": email,
            "password": password,
            "confirm_password": password,
        },
    )
    assert response.status_code == 201, response.text
    data = response.json()
    token = data["access_token"]

    return AuthHeaders(
        {"Authorization": f"Bearer {token}"}, user_id=data["user"]["id"], email=email
    )


@pytest.fixture
def auth_headers(client):
    """Create a user and return auth headers with user info."""
    return register_user(client, "Test User", "test@example.com")


@pytest.fixture
def other_auth_headers(client):
    """A second registered user, used as a collaborator."""
    return register_user(client, "Other User", "other@example.com")

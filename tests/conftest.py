import os
from datetime import datetime
from itertools import count

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend and cheap hashing for tests
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from gtd_api.main import create_app  # noqa: E402
from gtd_api.repositories import InMemoryRepository  # noqa: E402

PASSWORD = "Secret123"

_emails = count(1)


def parse_dt(value: str) -> datetime:
    """Parse an ISO timestamp from a response body (pydantic writes UTC as 'Z')."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def client(repository):
    app = create_app(repository=repository)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client):
    """Register a fresh user and return its Authorization headers."""

    def _register(email=None, display_name="Test User"):
        email = email or f"user{next(_emails)}@example.com"
        res = client.post(
            "/api/auth/register",
            json={"email": email, "password": PASSWORD, "displayName": display_name},
        )
        assert res.status_code == 201, res.text
        return {"Authorization": f"Bearer {res.json()['token']}"}

    return _register


@pytest.fixture
def auth(register):
    return register()


@pytest.fixture
def create_task(client, auth):
    """POST a task for the default user and return its JSON body."""

    def _create(name="Task", headers=None, **fields):
        payload = {"name": name, **fields}
        res = client.post("/api/tasks", json=payload, headers=headers or auth)
        assert res.status_code == 201, res.text
        return res.json()

    return _create

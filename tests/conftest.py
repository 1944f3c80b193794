"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite file; the settings and database caches are
cleared around each test so the app picks the file up.
"""
import asyncio
import os

# Settings must be resolvable before the app module is imported.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///./plateada-test.db")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from plateada_server.config import get_settings
from plateada_server.db import init_db
from plateada_server.db.connection import get_db
from plateada_server.main import app


def _clear_caches():
    get_settings.cache_clear()
    get_db.cache_clear()


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Fresh schema in a temporary SQLite file."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'plateada.db'}")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    _clear_caches()
    asyncio.run(init_db())
    yield get_db()
    _clear_caches()


@pytest.fixture
def client(database):
    """TestClient for the FastAPI app, bound to the test database."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    """Register an account over HTTP and return (token, user)."""
    counter = {"n": 0}

    def _register(role="client", display_name="Ana López", password="secreto123", email=None):
        counter["n"] += 1
        response = client.post("/auth/register", json={
            "email": email or f"{role}{counter['n']}@plateada.mx",
            "password": password,
            "displayName": display_name,
            "role": role,
        })
        assert response.status_code == 200, response.text
        data = response.json()
        return data["token"], data["user"]

    return _register


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return auth

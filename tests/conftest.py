"""
Pytest configuration and fixtures for testing
"""
import itertools
import json
import os
from datetime import datetime, timedelta

# Must be set before the app and settings are imported
os.environ["ENV"] = "test"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin-test-password"
os.environ["SESSION_SECRET"] = "test-session-secret-not-for-production"
os.environ["RATE_LIMIT_PER_MINUTE"] = "0"
os.environ["ACCESS_TRACKING_ENABLED"] = "false"
os.environ["TRIAL_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["JELLYFIN_SERVER_URL"] = "http://jellyfin.test"

import httpx
import pytest
from fastapi.testclient import TestClient

from crud.memory_storage import MemoryStorage
from crud.sql_storage import SqlStorage
from database import create_engine_for_url, create_session_factory
from dependencies import (
    get_access_tracker,
    get_activity_tracker,
    get_jellyfin_client,
    get_session_store,
    get_storage,
    get_trending_cache,
)
from main import app
from services.access_tracker import AccessTracker
from services.activity_tracker import ActivityTracker
from services.admin_sessions import AdminSessionStore
from services.event_log import MemoryEventSink
from services.geo_service import GeoLocator
from services.jellyfin_client import JellyfinClient
from utils.ttl_cache import TTLCache

# In-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
T0 = datetime(2024, 1, 1, 12, 0, 0)


class FakeClock:
    """Naive UTC clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeJellyfin:
    """
    Minimal Jellyfin user API served through httpx.MockTransport.
    Every request is recorded in calls; paths in fail_paths answer 500.
    """

    def __init__(self):
        self.users = {}
        self.sessions = []
        self.calls = []
        self.fail_paths = set()
        self._ids = itertools.count(1)

    def add_user(self, name: str, disabled: bool = False) -> str:
        user_id = f"user-{next(self._ids)}"
        self.users[user_id] = {
            "Id": user_id,
            "Name": name,
            "LastLoginDate": None,
            "LastActivityDate": None,
            "Policy": {"IsAdministrator": False, "IsDisabled": disabled, "EnableContentDownloading": True},
        }
        return user_id

    def user_by_name(self, name: str):
        for user in self.users.values():
            if user["Name"] == name:
                return user
        return None

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))
        if path in self.fail_paths:
            return httpx.Response(500, text="boom")
        if request.headers.get("X-Emby-Token") != "test-api-key":
            return httpx.Response(401)

        if path == "/Users" and method == "GET":
            return httpx.Response(200, json=list(self.users.values()))
        if path == "/Users/New" and method == "POST":
            body = json.loads(request.content)
            user_id = self.add_user(body["Name"])
            return httpx.Response(200, json=self.users[user_id])
        if path == "/Sessions" and method == "GET":
            return httpx.Response(200, json=self.sessions)

        parts = path.strip("/").split("/")
        if parts[0] == "Users" and len(parts) >= 2:
            user = self.users.get(parts[1])
            if user is None:
                return httpx.Response(404)
            if len(parts) == 2 and method == "GET":
                return httpx.Response(200, json=user)
            if len(parts) == 2 and method == "DELETE":
                del self.users[parts[1]]
                return httpx.Response(204)
            if parts[2] == "Policy" and method == "POST":
                user["Policy"] = json.loads(request.content)
                return httpx.Response(204)
            if parts[2] == "Password" and method == "POST":
                return httpx.Response(204)
        return httpx.Response(404)


def failing_geo_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_jellyfin():
    return FakeJellyfin()


@pytest.fixture
def jellyfin_client(fake_jellyfin):
    return JellyfinClient(
        "http://jellyfin.test",
        "test-api-key",
        transport=httpx.MockTransport(fake_jellyfin.handler),
    )


@pytest.fixture
def memory_storage(clock):
    return MemoryStorage(clock=clock)


async def _open_sql_storage(clock) -> SqlStorage:
    engine = create_engine_for_url(TEST_DATABASE_URL)
    storage = SqlStorage(create_session_factory(engine), engine=engine, clock=clock)
    await storage.initialize()
    return storage


@pytest.fixture
async def sql_storage(clock):
    """
    Isolated in-memory SQLite repository for each test.
    Tables are created before the test and the engine disposed after.
    """
    storage = await _open_sql_storage(clock)
    yield storage
    await storage.close()


@pytest.fixture(params=["memory", "sql"])
async def storage(request, clock):
    """Runs a test once per storage backend."""
    if request.param == "memory":
        yield MemoryStorage(clock=clock)
        return
    storage = await _open_sql_storage(clock)
    yield storage
    await storage.close()


@pytest.fixture
def geo_locator():
    return GeoLocator(transport=httpx.MockTransport(failing_geo_handler))


@pytest.fixture
def access_tracker(geo_locator):
    return AccessTracker(MemoryEventSink(1000), geo_locator)


@pytest.fixture
def activity_tracker(geo_locator, jellyfin_client):
    return ActivityTracker(MemoryEventSink(5000), geo_locator, jellyfin_client)


@pytest.fixture
def session_store():
    return AdminSessionStore(max_age_seconds=3600)


@pytest.fixture
def client(memory_storage, jellyfin_client, access_tracker, activity_tracker, session_store):
    """FastAPI TestClient with every service swapped for a test double"""
    app.dependency_overrides[get_storage] = lambda: memory_storage
    app.dependency_overrides[get_jellyfin_client] = lambda: jellyfin_client
    app.dependency_overrides[get_access_tracker] = lambda: access_tracker
    app.dependency_overrides[get_activity_tracker] = lambda: activity_tracker
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_trending_cache] = lambda: TTLCache(3600)

    test_client = TestClient(app)

    yield test_client

    # Cleanup: remove dependency override
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client):
    """TestClient holding a logged-in admin session cookie"""
    response = client.post(
        "/api/admin/login",
        json={"username": "admin", "password": "admin-test-password"},
    )
    assert response.status_code == 200
    return client

"""Pytest configuration and fixtures for engine and API tests."""
import os

# Set test env BEFORE any imports that use config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["INITIAL_ADMIN_PASSWORD"] = "testpass123"
os.environ["INITIAL_ADMIN_USERNAME"] = "admin"
os.environ["RESULTS_WEBHOOK_URL"] = ""

import pytest
from httpx import ASGITransport, AsyncClient

from draws.models import Event, EventEntry, School
from draws.models.base import async_session_factory, engine, init_db
from draws.services.progression import DrawEngine
from draws.services.repository import InMemoryDrawRepository
from web.api.main import app


class RecordingEmitter:
    """Result emitter that remembers every completion notification."""

    def __init__(self):
        self.calls = []

    async def on_draw_completed(self, draw_id, standings):
        self.calls.append((draw_id, standings))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
async def _init_db():
    """Fresh in-memory database per test (ASGI lifespan doesn't run with httpx)."""
    await init_db()
    yield
    # Dropping the pooled connection discards the :memory: database
    await engine.dispose()


@pytest.fixture
def repo():
    return InMemoryDrawRepository()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def draw_engine(repo, emitter):
    return DrawEngine(repo, emitter)


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def auth_headers(client):
    """Login as the bootstrap super admin and return Authorization headers."""
    r = await client.post(
        "/api/auth/login",
        json={"username": "admin", "password": "testpass123"},
    )
    assert r.status_code == 200, f"Login failed: {r.text}"
    token = r.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def basketball_event():
    """Event 'basketball' with four approved entries (p1..p4 in ranking order) and one from a pending school."""
    async with async_session_factory() as session:
        session.add_all([
            School(id="springfield", name="Springfield High", status="approved"),
            School(id="riverside", name="Riverside Academy", status="approved"),
            School(id="oakwood", name="Oakwood High", status="pending"),
            Event(id="basketball", name="Basketball Championship", category="sporting", max_participants=8),
        ])
        await session.flush()
        session.add_all([
            EventEntry(event_id="basketball", participant_ref="p3", display_name="Springfield B", school_id="springfield", sort_order=3),
            EventEntry(event_id="basketball", participant_ref="p1", display_name="Springfield A", school_id="springfield", sort_order=1),
            EventEntry(event_id="basketball", participant_ref="p2", display_name="Riverside A", school_id="riverside", sort_order=2),
            EventEntry(event_id="basketball", participant_ref="p4", display_name="Riverside B", school_id="riverside", sort_order=4),
            EventEntry(event_id="basketball", participant_ref="x1", display_name="Oakwood A", school_id="oakwood", sort_order=0),
        ])
        await session.commit()
    return "basketball"

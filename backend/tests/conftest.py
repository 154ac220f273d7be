"""
apiforge — Test Configuration (conftest.py)
============================================

What:  Shared pytest fixtures for the whole suite.
How:   Every app-level fixture builds a fresh container with in-memory
       providers, so tests never share rate-limit counters or records and
       never need a database.

Fixture Hierarchy:
    test_settings   Settings for an isolated, memory-backed app
    container       Container built from test_settings
    app             FastAPI app wrapping `container`
    test_client     httpx AsyncClient over ASGITransport
    auth_headers    Bearer token for a PLAYER
    food_entry_payload  Valid POST /api/v1/foodEntry body (dated today)
"""

import os
from datetime import datetime, timezone

# Before any apiforge import: the module-level app must not touch a real DB
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from apiforge.config import Settings
from apiforge.container import build_container


class FakeClock:
    """Deterministic epoch-millisecond clock for the rate limiter."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def make_settings(**overrides) -> Settings:
    values = {
        "persistence_backend": "memory",
        "log_level": "WARNING",
        "jwt_secret": "test-secret",
        "rate_limit_max": 100,
        "request_timeout_seconds": 5.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def settings_factory():
    """Build Settings with overrides: `settings_factory(auth_provider="none")`."""
    return make_settings


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def container(test_settings, clock):
    return build_container(test_settings, clock=clock)


@pytest.fixture
def app(container):
    from apiforge.main import create_app

    return create_app(container.settings, container=container)


@pytest_asyncio.fixture
async def test_client(app):
    """
    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(container):
    token = container.auth.issue_token({"sub": "player-1", "role": "PLAYER"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def food_entry_payload():
    return {
        "mealType": "BREAKFAST",
        "description": "Oatmeal & berries",
        "date": datetime.now(timezone.utc).date().isoformat(),
        "time": "07:30",
        "location": "Home",
    }

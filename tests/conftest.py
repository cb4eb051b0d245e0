# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- fakeredis-backed ValkeyCache instances
- Clean Redis state per test (automatic flush)
- An event factory producing valid Event objects with sequential ids
"""

import itertools
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from sitelens.core.models import Event
from sitelens.infrastructure.cache import ValkeyCache

# Reference instant used across tests
T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real ValkeyCache behavior.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()


@pytest.fixture()
def fake_cache(fake_redis):
    """A ValkeyCache with its internal client replaced by fakeredis.

    This avoids needing a real Valkey/Redis server for unit tests while
    exercising the full ValkeyCache API surface.
    """
    cache = ValkeyCache.__new__(ValkeyCache)
    cache._client = fake_redis
    cache._url = "redis://fake:6379"
    return cache


@pytest.fixture()
def make_event():
    """Factory for events with sequential ids.

    Usage:
        make_event("v1", minutes=5, url="/pricing", referrer="https://google.com/")
        make_event("v1", days=3, event_name="conversion")

    Offsets (days/minutes) are relative to T0.
    """
    counter = itertools.count(1)

    def _make(visitor_id: str = "v1", *, days: float = 0, minutes: float = 0, **fields) -> Event:
        data = {
            "id": f"e{next(counter):04d}",
            "site_id": "site-1",
            "visitor_id": visitor_id,
            "url": "https://example.com/",
            "created_at": T0 + timedelta(days=days, minutes=minutes),
        }
        data.update(fields)
        return Event(**data)

    return _make

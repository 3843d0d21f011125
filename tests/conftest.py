"""Shared fixtures."""
import pytest
import pytest_asyncio

from artist_event_notify.db import create_engine_from_config, create_session_factory, init_schema
from artist_event_notify.models import CatalogConfig, DatabaseConfig
from artist_event_notify.store import EventStore, NotificationLedger, SubscriptionIndex

from tests.helpers import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog_config():
    return CatalogConfig(
        api_key="test-key",
        base_url="https://catalog.test/discovery/v2",
        page_size=50,
        timeout=5.0,
        min_interval=0.2,
        max_retries=3,
        retry_delay=1.0,
    )


@pytest_asyncio.fixture
async def sessions(tmp_path):
    """Session factory over a fresh SQLite database file."""
    engine = create_engine_from_config(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"))
    await init_schema(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def event_store(sessions):
    return EventStore(sessions)


@pytest.fixture
def subscriptions(sessions):
    return SubscriptionIndex(sessions)


@pytest.fixture
def ledger(sessions):
    return NotificationLedger(sessions)

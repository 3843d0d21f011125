"""Tests for the main application module."""
import asyncio
import os
import signal
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from artist_event_notify.app import SyncScheduler, load_config, run_sync, trigger
from artist_event_notify.db import create_engine_from_config, create_session_factory, init_schema
from artist_event_notify.errors import ConfigurationError
from artist_event_notify.models import AppConfig, DatabaseConfig, SendResult, SyncConfig
from artist_event_notify.store import EventStore, SubscriptionIndex

from tests.helpers import parsed_event


class TestLoadConfig:
    """Tests for load_config."""

    def test_minimal_env(self):
        config = load_config({"TICKETMASTER_API_KEY": "abc"})

        assert config.catalog.api_key == "abc"
        assert config.catalog.min_interval == 0.2
        assert config.catalog.retry_delay == 1.0
        assert config.push.access_token is None
        assert config.sync.max_send_attempts == 5
        assert config.log_level == "INFO"

    def test_overrides(self):
        config = load_config({
            "TICKETMASTER_API_KEY": " abc ",
            "DATABASE_URL": "sqlite+aiosqlite:///tmp/x.db",
            "EXPO_ACCESS_TOKEN": "expo",
            "CATALOG_MIN_INTERVAL_MS": "500",
            "CATALOG_MAX_RETRIES": "5",
            "CATALOG_RETRY_DELAY_MS": "250",
            "HTTP_TIMEOUT": "7.5",
            "MAX_SEND_ATTEMPTS": "0",
            "SYNC_CONCURRENCY": "4",
            "LOG_LEVEL": "debug",
        })

        assert config.catalog.api_key == "abc"
        assert config.catalog.min_interval == 0.5
        assert config.catalog.max_retries == 5
        assert config.catalog.retry_delay == 0.25
        assert config.catalog.timeout == 7.5
        assert config.push.timeout == 7.5
        assert config.push.access_token == "expo"
        assert config.database.url == "sqlite+aiosqlite:///tmp/x.db"
        assert config.sync.max_send_attempts == 0
        assert config.sync.max_concurrent_artists == 4
        assert config.log_level == "DEBUG"

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError):
            load_config({})

    def test_invalid_number(self):
        with pytest.raises(ConfigurationError, match="CATALOG_MAX_RETRIES"):
            load_config({"TICKETMASTER_API_KEY": "abc", "CATALOG_MAX_RETRIES": "many"})

    def test_negative_limits_rejected(self):
        with pytest.raises(ConfigurationError):
            load_config({"TICKETMASTER_API_KEY": "abc", "MAX_SEND_ATTEMPTS": "-1"})

    def test_invalid_log_level_falls_back(self):
        config = load_config({"TICKETMASTER_API_KEY": "abc", "LOG_LEVEL": "LOUD"})
        assert config.log_level == "INFO"


class TestTrigger:
    """Tests for the trigger entry point."""

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        result = await trigger({})

        assert result["success"] is False
        assert "TICKETMASTER_API_KEY" in result["error"]

    @pytest.mark.asyncio
    async def test_success(self):
        response = {"success": True, "eventsProcessed": 1, "newEventsAdded": 1, "notificationsSent": 0}
        with patch("artist_event_notify.app.run_sync", AsyncMock(return_value=response)) as mock_run:
            result = await trigger({"TICKETMASTER_API_KEY": "abc"})

        assert result == response
        mock_run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_reported(self):
        with patch("artist_event_notify.app.run_sync", AsyncMock(side_effect=RuntimeError("db down"))):
            result = await trigger({"TICKETMASTER_API_KEY": "abc"})

        assert result == {"success": False, "error": "db down"}


class TestRunSync:
    """Tests for run_sync against a real database."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'app.db'}"
        engine = create_engine_from_config(DatabaseConfig(url=url))
        await init_schema(engine)
        sessions = create_session_factory(engine)
        await SubscriptionIndex(sessions).follow("U1", "A1", "Artist X")
        await SubscriptionIndex(sessions).register_push_token("U1", "tok1")
        await engine.dispose()

        catalog = MagicMock()
        catalog.fetch_events_for_artist = AsyncMock(return_value=[parsed_event("EVT1")])
        catalog_cls = MagicMock()
        catalog_cls.return_value.__aenter__.return_value = catalog
        push = MagicMock()
        push.send_message = AsyncMock(return_value=SendResult(success=True))
        push.close = AsyncMock()

        config = AppConfig(database=DatabaseConfig(url=url))
        with patch("artist_event_notify.app.CatalogClient", catalog_cls), \
                patch("artist_event_notify.app.create_push_service", return_value=push):
            result = await run_sync(config)

        assert result["success"] is True
        assert result["eventsProcessed"] == 1
        assert result["newEventsAdded"] == 1
        assert result["notificationsSent"] == 1
        push.close.assert_awaited_once()

        engine = create_engine_from_config(DatabaseConfig(url=url))
        assert await EventStore(create_session_factory(engine)).count_unnotified() == 0
        await engine.dispose()


class TestSyncScheduler:
    """Tests for the SyncScheduler class."""

    @pytest.fixture
    def scheduler(self):
        return SyncScheduler(AppConfig(sync=SyncConfig(interval_minutes=0.001)))

    @pytest.mark.asyncio
    async def test_runs_until_shutdown(self, scheduler):
        calls = []

        async def run_once():
            calls.append(1)
            if len(calls) == 2:
                scheduler.shutdown_event.set()
            return {"success": True}

        scheduler.run_once = run_once

        await asyncio.wait_for(scheduler.run(), timeout=5)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_wait(self):
        scheduler = SyncScheduler(AppConfig(), interval_minutes=60)
        scheduler.run_once = AsyncMock(return_value={"success": True})

        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)
        scheduler.shutdown_event.set()
        await asyncio.wait_for(task, timeout=5)

        scheduler.run_once.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_once_reports_errors(self, scheduler):
        with patch("artist_event_notify.app.run_sync", AsyncMock(side_effect=RuntimeError("boom"))):
            result = await scheduler.run_once()

        assert result == {"success": False, "error": "boom"}
        assert scheduler.run_count == 1

    def test_signal_sets_shutdown(self, scheduler):
        scheduler._handle_shutdown(15, None)
        assert scheduler.shutdown_event.is_set()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
    @pytest.mark.asyncio
    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    async def test_real_signal_stops_long_wait(self, sig):
        scheduler = SyncScheduler(AppConfig(), interval_minutes=60)
        scheduler.run_once = AsyncMock(return_value={"success": True})
        scheduler.install_signal_handlers()
        try:
            task = asyncio.create_task(scheduler.run())
            await asyncio.sleep(0.1)

            os.kill(os.getpid(), sig)
            await asyncio.wait_for(task, timeout=5)
        finally:
            scheduler.remove_signal_handlers()

        assert scheduler.shutdown_event.is_set()
        scheduler.run_once.assert_awaited_once()

"""
Main application module: configuration, the sync trigger and the scheduler loop.
"""
import asyncio
import logging
import os
import signal
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

from dotenv import load_dotenv

from .catalog import CatalogClient
from .db import create_engine_from_config, create_session_factory, init_schema
from .errors import ConfigurationError
from .models import AppConfig, CatalogConfig, DatabaseConfig, PushConfig, SyncConfig
from .push import create_push_service
from .store import EventStore, NotificationLedger, SubscriptionIndex
from .sync import SyncOrchestrator

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

T = TypeVar("T")


def _parse(env: Mapping[str, str], name: str, cast: Callable[[str], T], default: T) -> T:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {name}: {raw!r}") from e


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load configuration from environment variables.

    Args:
        env: Mapping to read from. Defaults to ``os.environ`` after loading ``.env``.

    Raises:
        ConfigurationError: if a required value is missing or a value is malformed.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    api_key = (env.get("TICKETMASTER_API_KEY") or "").strip()
    if not api_key:
        raise ConfigurationError("TICKETMASTER_API_KEY is not set")

    timeout = _parse(env, "HTTP_TIMEOUT", float, 20.0)
    catalog = CatalogConfig(
        api_key=api_key,
        base_url=env.get("CATALOG_BASE_URL") or CatalogConfig.base_url,
        page_size=_parse(env, "CATALOG_PAGE_SIZE", int, 50),
        timeout=timeout,
        min_interval=_parse(env, "CATALOG_MIN_INTERVAL_MS", int, 200) / 1000.0,
        max_retries=_parse(env, "CATALOG_MAX_RETRIES", int, 3),
        retry_delay=_parse(env, "CATALOG_RETRY_DELAY_MS", int, 1000) / 1000.0,
    )
    push = PushConfig(
        url=env.get("EXPO_PUSH_URL") or PushConfig.url,
        access_token=(env.get("EXPO_ACCESS_TOKEN") or "").strip() or None,
        timeout=timeout,
    )
    database = DatabaseConfig(url=env.get("DATABASE_URL") or DatabaseConfig.url)
    sync = SyncConfig(
        max_send_attempts=_parse(env, "MAX_SEND_ATTEMPTS", int, 5),
        max_concurrent_artists=_parse(env, "SYNC_CONCURRENCY", int, 1),
        interval_minutes=_parse(env, "SYNC_INTERVAL_MIN", float, 60.0),
    )

    log_level = (env.get("LOG_LEVEL") or "INFO").upper()
    if log_level not in LOG_LEVELS:
        logger.warning(f"Invalid LOG_LEVEL {log_level!r}. Using INFO.")
        log_level = "INFO"

    if catalog.page_size <= 0:
        raise ConfigurationError("CATALOG_PAGE_SIZE must be positive")
    if catalog.max_retries < 0 or sync.max_send_attempts < 0:
        raise ConfigurationError("Retry limits cannot be negative")

    return AppConfig(catalog=catalog, push=push, database=database, sync=sync, log_level=log_level)


def configure_logging(level: str = "INFO") -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
        ],
    )

    # httpx logs full request URLs, which carry the catalog API key
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


async def run_sync(config: AppConfig) -> Dict[str, Any]:
    """Run one sync pass against the configured store and services."""
    engine = create_engine_from_config(config.database)
    push = create_push_service(config.push)
    try:
        await init_schema(engine)
        sessions = create_session_factory(engine)
        async with CatalogClient(config.catalog) as catalog:
            orchestrator = SyncOrchestrator(
                catalog=catalog,
                events=EventStore(sessions),
                subscriptions=SubscriptionIndex(sessions),
                ledger=NotificationLedger(sessions),
                push=push,
                config=config.sync,
            )
            stats = await orchestrator.run()
        return stats.as_response()
    finally:
        await push.close()
        await engine.dispose()


async def trigger(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Entry point for schedulers: run one pass and report the outcome.

    Never raises; failure to start is reported as ``{"success": False, "error": ...}``.
    """
    try:
        config = load_config(env)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return {"success": False, "error": str(e)}

    try:
        return await run_sync(config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error in sync-events-and-notify: {e}", exc_info=True)
        return {"success": False, "error": str(e) or type(e).__name__}


class SyncScheduler:
    """Runs the sync pass at a fixed interval until shutdown is requested."""

    def __init__(self, config: AppConfig, interval_minutes: Optional[float] = None):
        self.config = config
        self.interval_minutes = interval_minutes or config.sync.interval_minutes
        self.shutdown_event = asyncio.Event()
        self.run_count = 0

    def install_signal_handlers(self) -> None:
        """Stop on SIGINT/SIGTERM. Must be called from the running event loop."""
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._handle_shutdown, sig, None)
            except NotImplementedError:
                # no loop signal support on Windows
                signal.signal(sig, self._handle_shutdown)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)

    def _handle_shutdown(self, signum, frame) -> None:
        """Handle shutdown signals gracefully."""
        logger.warning(f"Received signal {signum}, initiating graceful shutdown...")
        self.shutdown_event.set()

    async def run_once(self) -> Dict[str, Any]:
        self.run_count += 1
        logger.info(f"🔄 Starting run #{self.run_count} at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        try:
            return await run_sync(self.config)
        except Exception as e:
            logger.error(f"Error in sync run #{self.run_count}: {e}", exc_info=True)
            return {"success": False, "error": str(e)}

    async def run(self) -> None:
        """Run until ``shutdown_event`` is set."""
        while not self.shutdown_event.is_set():
            await self.run_once()
            await self._wait_until_next_run()
        logger.info("✅ Scheduler stopped")

    async def _wait_until_next_run(self) -> None:
        """Wait for the interval, returning early on shutdown."""
        wait_seconds = self.interval_minutes * 60
        logger.info(f"⏳ Next run in {self.interval_minutes:.1f} minutes")
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            pass

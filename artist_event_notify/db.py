"""Async database helpers."""
import logging

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from .errors import ConfigurationError
from .models import DatabaseConfig

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def create_engine_from_config(config: DatabaseConfig) -> AsyncEngine:
    """Create an async engine, rejecting URLs without an async driver."""
    try:
        url = make_url(config.url)
    except Exception as e:
        raise ConfigurationError(f"Invalid DATABASE_URL: {e}") from e

    driver = url.drivername.lower()
    if "+" not in driver:
        raise ConfigurationError(
            f"DATABASE_URL must name an async driver (e.g. sqlite+aiosqlite), got '{driver}'"
        )
    return create_async_engine(config.url, echo=config.echo, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, autoflush=False, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    from . import orm  # noqa: F401  registers the tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Database schema ready")

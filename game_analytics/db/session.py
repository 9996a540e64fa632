from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from game_analytics.core.config import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    options: dict = {"pool_pre_ping": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        return options
    options.update(
        pool_size=max(1, settings.database_pool_size),
        max_overflow=max(0, settings.database_max_overflow),
        pool_timeout=max(1, settings.database_pool_timeout_seconds),
        pool_recycle=max(1, settings.database_pool_recycle_seconds),
    )
    return options


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    if not settings.database_url:
        logger.error("database_url_missing")
        raise RuntimeError(
            "DATABASE_URL is not configured. Point DATABASE_URL at the event store before running analytics."
        )
    return create_engine(settings.database_url, **_engine_options(settings.database_url))


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker[Session]:
    engine = get_engine()
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def get_session() -> Iterator[Session]:
    """Request-scoped session. The engine never writes, so the transaction is always rolled back."""
    session_factory = get_session_factory()
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

"""SQLAlchemy engine for the clinic database.

Single shared engine with connection pooling.  Every translated query runs
through `execute_readonly`, which opens a READ ONLY transaction before
executing anything.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            echo=False,
        )
        logger.info("DB engine created  host=%s  db=%s", settings.postgres_host, settings.postgres_db)
    return _engine


def reset_engine() -> None:
    """Dispose of the pooled connections so the next call reconnects."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


@contextmanager
def readonly_connection() -> Generator[Connection, None, None]:
    """Yield a connection inside a READ ONLY transaction.

    The transaction is rolled back on exit; nothing the statement does can
    persist.
    """
    engine = get_engine()
    with engine.connect() as conn:
        with conn.begin() as tx:
            conn.execute(text("SET TRANSACTION READ ONLY"))
            try:
                yield conn
            finally:
                tx.rollback()

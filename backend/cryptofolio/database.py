# backend/cryptofolio/database.py
"""
Database connection and session management.

This module configures SQLAlchemy with:
- Connection pooling for server databases
- StaticPool for in-memory SQLite (tests, local experiments)
- A session factory shared by the ledger repository

The ledger repository opens one short-lived session per call, so the
same SessionLocal can be used from the analytics worker threads.

Pool Configuration (configurable via environment variables):
- DB_POOL_SIZE: Persistent connections (default: 5)
- DB_POOL_MAX_OVERFLOW: Burst capacity (default: 10)
- DB_POOL_RECYCLE: Connection lifetime (default: 3600s)
- DB_POOL_PRE_PING: Health checks (default: True)
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings

logger = logging.getLogger(__name__)


def _create_engine() -> Engine:
    """
    Create SQLAlchemy engine with environment-appropriate configuration.

    Configuration varies by database type:
    - SQLite: Uses StaticPool so an in-memory database is shared across threads
    - Others: Uses QueuePool with configurable connection pooling
    """
    if settings.is_sqlite:
        # check_same_thread=False: analytics sections run on worker threads
        logger.info("Configuring SQLite database")
        return create_engine(
            settings.database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=settings.debug,
        )

    logger.info(
        f"Configuring database pool: "
        f"size={settings.db_pool_size}, "
        f"max_overflow={settings.db_pool_max_overflow}, "
        f"recycle={settings.db_pool_recycle}s, "
        f"pre_ping={settings.db_pool_pre_ping}"
    )

    return create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_timeout=30,
        echo=settings.debug,
    )


engine = _create_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success, rolls back on any exception, always closes.

    Usage:
        with session_scope() as db:
            db.add(holding)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    from .models import Base

    target = bind or engine
    Base.metadata.create_all(target)
    logger.info("Database tables ensured")


def check_database_health() -> dict:
    """
    Check database connectivity.

    Returns:
        dict: Health status with connection info
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        return {
            "status": "healthy",
            "database": "sqlite" if settings.is_sqlite else engine.dialect.name,
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from app.core.config import Settings
from app.core.errors import TransientError

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings) -> Engine:
    """
    Build the engine for the configured DATABASE_URL.

    Every store call is bounded: the pool gives up after store_timeout_seconds and,
    on PostgreSQL, statement_timeout caps each statement.
    """
    url = settings.database_url
    timeout = settings.store_timeout_seconds

    if url.startswith("sqlite"):
        # Local development and tests. sqlite serializes writers; wait instead of failing.
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": timeout},
            echo=False,
        )

    # Configure connection pooling to prevent connection exhaustion
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,  # Number of connections to maintain persistently
        max_overflow=20,  # Maximum number of connections to create beyond pool_size
        pool_timeout=timeout,  # Seconds to wait before giving up on getting a connection
        pool_pre_ping=True,  # Verify connections before using them (handles stale connections)
        pool_recycle=3600,  # Recycle connections after 1 hour to prevent stale connections
        connect_args={
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        },
        echo=False,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_operation(db: Session, description: str):
    """Turn connectivity and timeout failures into TransientError (HTTP 503)."""
    try:
        yield
    except (OperationalError, PoolTimeoutError) as e:
        db.rollback()
        logger.error("[DB] %s failed: %s", description, e)
        raise TransientError(f"{description} is temporarily unavailable") from e

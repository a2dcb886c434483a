"""Database connection and schema management using SQLAlchemy Core"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import (
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    create_engine,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import NullPool, StaticPool

from ..config import get_settings
from ..utils.datetime import utcnow

logger = logging.getLogger(__name__)


metadata = MetaData()

# API keys table definition (SQLAlchemy Core)
# token holds the scrypt hash for secret keys and the raw token for publishable keys
api_keys_table = Table(
    "api_keys",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("token", String(255), nullable=False, index=True),
    Column("salt", String(64), nullable=False, default=""),
    Column("redacted", String(32), nullable=False),
    Column("title", String(255), nullable=False),
    Column("type", String(20), nullable=False, index=True),
    Column("created_by", String(255), nullable=False),
    Column("revoked_by", String(255), nullable=True),
    Column("revoked_at", DateTime, nullable=True, index=True),
    Column("created_at", DateTime, nullable=False, default=utcnow),
    Column("updated_at", DateTime, nullable=False, default=utcnow, onupdate=utcnow),
)

# Advisory lock id guarding secret key creation and revocation (PostgreSQL)
SECRET_KEY_LOCK_ID = 727_340_001

# Process-wide fallback for dialects without advisory locks
_secret_key_lock = threading.Lock()


def get_database_url() -> str:
    """Get database URL from settings or use default for local dev"""
    database_url = get_settings().database_url

    if not database_url:
        # Default for local development
        database_url = "sqlite:///./keyforge.db"

    return database_url


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_db_engine(database_url: Optional[str] = None, **kwargs: Any) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    Args:
        database_url: Database connection string (defaults to DATABASE_URL env var)
        **kwargs: Additional engine options

    Returns:
        SQLAlchemy Engine instance
    """
    url = database_url or get_database_url()

    engine_options: dict[str, Any] = {"echo": False}
    if _is_sqlite(url):
        engine_options["connect_args"] = {"check_same_thread": False}
    else:
        # Default engine options for production reliability
        engine_options.update(
            {
                "pool_pre_ping": True,  # Verify connections before using
                "pool_recycle": 3600,  # Recycle connections after 1 hour
                "pool_size": 5,
                "max_overflow": 10,
            }
        )

    # Allow override of defaults
    engine_options.update(kwargs)

    return create_engine(url, **engine_options)


# Global engine instance - created once and reused across all calls
_global_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """
    Get or create the global database engine instance.

    Returns:
        Global SQLAlchemy Engine instance
    """
    global _global_engine

    if _global_engine is None:
        _global_engine = create_db_engine()

    return _global_engine


def create_test_engine(database_url: str = "sqlite://") -> Engine:
    """
    Create engine for testing.

    In-memory SQLite shares one connection (StaticPool) so every checkout
    sees the same database; anything else runs without pooling.

    Args:
        database_url: Database connection string

    Returns:
        SQLAlchemy Engine instance
    """
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )

    return create_engine(
        database_url,
        poolclass=NullPool,
        echo=False,
    )


def init_db(engine: Engine) -> None:
    """Create the schema if it does not exist yet."""
    metadata.create_all(engine)


@contextmanager
def get_connection(engine: Engine) -> Iterator[Connection]:
    """
    Context manager for database connections.

    Commits when the block exits cleanly and rolls back otherwise.

    Usage:
        with get_connection(engine) as conn:
            result = conn.execute(...)
    """
    conn = engine.connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def secret_key_transaction(engine: Engine) -> Iterator[Connection]:
    """
    Open a transaction serialized against other secret key mutations.

    PostgreSQL takes a transaction-scoped advisory lock, released on commit
    or rollback. Other dialects hold a process-wide lock until the
    connection is closed.

    Usage:
        with secret_key_transaction(engine) as conn:
            ...validate, then write...
    """
    if engine.dialect.name == "postgresql":
        with get_connection(engine) as conn:
            conn.execute(
                text("SELECT pg_advisory_xact_lock(:lock_id)"),
                {"lock_id": SECRET_KEY_LOCK_ID},
            )
            yield conn
        return

    with _secret_key_lock:
        with get_connection(engine) as conn:
            yield conn


def wait_for_db(engine: Engine, max_retries: int = 30, retry_interval: int = 1) -> bool:
    """
    Wait for database to be ready.

    Args:
        engine: SQLAlchemy Engine instance
        max_retries: Maximum number of connection attempts
        retry_interval: Seconds between retries

    Returns:
        True if database is ready, False otherwise
    """
    for attempt in range(max_retries):
        try:
            with get_connection(engine) as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(
                    f"Database not ready (attempt {attempt + 1}/{max_retries}), retrying in {retry_interval}s..."
                )
                time.sleep(retry_interval)
            else:
                logger.error(
                    f"Failed to connect to database after {max_retries} attempts: {e}"
                )
                return False

    return False

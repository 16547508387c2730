"""Database engine builder (SSOT).

- Default pool: NullPool (Supabase pooler in transaction mode does the pooling)
- Supabase host: sslmode=require enforced via connect_args
- Postgres: connect_timeout + statement_timeout on every connection, so a slow
  database surfaces as an OperationalError instead of a hung request
- SQLite (tests, local): check_same_thread=False
- ENV: CLIXEN_DB_POOL=nullpool|queuepool (default: nullpool)
"""

import logging
import os
import re
from typing import Any
from urllib.parse import urlparse

from sqlalchemy import Engine, NullPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from clixen_api.config.env import (
    get_database_url,
    get_db_connect_timeout_seconds,
    get_db_statement_timeout_ms,
)

logger = logging.getLogger(__name__)

_SUPABASE_HOST_MARKERS = ("supabase.co", "supabase.com")


def _is_supabase_host(url: str) -> bool:
    hostname = (urlparse(url).hostname or "").lower()
    return any(hostname.endswith(marker) for marker in _SUPABASE_HOST_MARKERS)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _mask_password(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


def _postgres_connect_args(url: str) -> dict[str, Any]:
    connect_args: dict[str, Any] = {
        "connect_timeout": get_db_connect_timeout_seconds(),
        "options": f"-c statement_timeout={get_db_statement_timeout_ms()}",
    }
    if _is_supabase_host(url) and "sslmode=" not in url:
        connect_args["sslmode"] = "require"

    app_name = os.getenv("CLIXEN_DB_APPLICATION_NAME", "clixen-api")
    if app_name:
        connect_args["application_name"] = app_name
    return connect_args


def build_engine(database_url: str | None = None) -> Engine:
    """
    Build SQLAlchemy engine.

    Args:
        database_url: Database URL. If None, resolved via get_database_url().

    Returns:
        SQLAlchemy Engine instance.

    Raises:
        ValueError: If CLIXEN_DB_POOL holds an unknown value.

    Environment Variables:
        CLIXEN_DB_POOL: Pool mode - "nullpool" (default) | "queuepool"
        CLIXEN_DB_POOL_SIZE: QueuePool size (default: 5, only for queuepool)
        CLIXEN_DB_MAX_OVERFLOW: QueuePool overflow (default: 10, only for queuepool)
    """
    url = database_url or get_database_url()

    if _is_sqlite(url):
        connect_args: dict[str, Any] = {"check_same_thread": False, "timeout": 30}
    else:
        connect_args = _postgres_connect_args(url)

    pool_mode = os.getenv("CLIXEN_DB_POOL", "nullpool").lower()

    if pool_mode == "nullpool":
        engine = create_engine(
            url,
            poolclass=NullPool,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
    elif pool_mode == "queuepool":
        pool_size = int(os.getenv("CLIXEN_DB_POOL_SIZE", "5"))
        max_overflow = int(os.getenv("CLIXEN_DB_MAX_OVERFLOW", "10"))
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max_overflow,
            connect_args=connect_args,
        )
    else:
        raise ValueError(
            f"Invalid CLIXEN_DB_POOL value: {pool_mode}. "
            "Must be 'nullpool' or 'queuepool'."
        )

    logger.debug(
        "Database engine created: pool=%s, url=%s",
        engine.pool.__class__.__name__,
        _mask_password(url),
    )
    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """
    Build SQLAlchemy sessionmaker.

    Examples:
        >>> engine = build_engine()
        >>> SessionLocal = build_sessionmaker(engine)
        >>> with SessionLocal() as session:
        ...     # use session
    """
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

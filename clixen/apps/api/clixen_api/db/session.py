"""Database session management.

Uses the unified engine builder with NullPool default. DATABASE_URL is
mandatory in production (get_database_url fails fast).
"""

from typing import Generator

from sqlalchemy.orm import Session

from clixen_api.config.env import get_database_url
from clixen_api.db.engine import build_engine, build_sessionmaker

DATABASE_URL = get_database_url()

engine = build_engine(DATABASE_URL)

SessionLocal = build_sessionmaker(engine)


def get_db() -> Generator[Session, None, None]:
    """
    Get database session.

    Yields:
        Session: SQLAlchemy session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

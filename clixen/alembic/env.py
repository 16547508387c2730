"""Alembic environment configuration.

  - URL resolution: DATABASE_URL_MIGRATIONS > DATABASE_URL > alembic.ini
  - Online migration uses build_engine(), so Supabase SSL, timeouts and
    NullPool default match the runtime engine.
"""

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context

# Add apps/api to path so clixen_api imports resolve without an install.
sys.path.insert(0, str(Path(__file__).parent.parent / "apps" / "api"))

from clixen_api.db.engine import build_engine  # noqa: E402
from clixen_api.db.models import Base  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

database_url = (
    os.getenv("DATABASE_URL_MIGRATIONS")
    or os.getenv("DATABASE_URL")
    or config.get_main_option("sqlalchemy.url")
)

if not database_url:
    raise ValueError(
        "Database URL not configured. "
        "Set DATABASE_URL_MIGRATIONS or DATABASE_URL environment variable, "
        "or configure sqlalchemy.url in alembic.ini."
    )

config.set_main_option("sqlalchemy.url", database_url)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (SQL generation, no DB connection)."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode (direct DB connection)."""
    connectable = build_engine(database_url)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

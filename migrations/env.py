"""Alembic environment for the Warden schema.

DATABASE_URL comes from the process environment, then .env and .env.local
at the repository root, so migrations target the same database as the bot.
Async driver names are swapped for their sync counterparts.
"""

import os
import pathlib
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, make_url

from Warden import models  # noqa: F401  (registers tables on Base.metadata)
from Warden.db import Base

_ROOT = pathlib.Path(__file__).resolve().parents[1]
load_dotenv(_ROOT / ".env")
# .env.local holds per-developer values and wins over .env
load_dotenv(_ROOT / ".env.local", override=True)

_SYNC_DRIVERS = {
    "postgresql": "postgresql+psycopg",
    "postgres": "postgresql+psycopg",
    "sqlite": "sqlite",
}

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)
target_metadata = Base.metadata


def _sync_db_url() -> URL:
    url = make_url(os.environ.get("DATABASE_URL", "sqlite:///./warden.sqlite3"))
    backend = url.get_backend_name()
    return url.set(drivername=_SYNC_DRIVERS.get(backend, backend))


def run_migrations_offline() -> None:
    context.configure(
        url=_sync_db_url().render_as_string(hide_password=False),
        target_metadata=target_metadata,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with create_engine(_sync_db_url()).connect() as connection:
        # batch mode lets SQLite alter tables in later revisions
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

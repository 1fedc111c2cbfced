"""Alembic environment: runs TIS TIS migrations through the async engine.

Invariants:
    - The database URL comes from Settings (DATABASE_URL), normalised to postgresql+asyncpg
      by the same validator the API uses; alembic.ini only supplies logging config
    - tistis.models is imported so autogenerate sees every table
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from tistis.config import get_settings
from tistis.db.base import Base
import tistis.models  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
DATABASE_URL = get_settings().database_url


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    """Emit SQL to stdout instead of connecting (alembic upgrade --sql)."""
    _configure(
        url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"},
    )


def _run_sync(connection: Connection) -> None:
    _configure(connection=connection)


async def run_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(_run_sync)
    await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())

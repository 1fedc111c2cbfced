"""Database Session Manager: async engine, per-unit-of-work sessions, SQLAlchemy error translation.

Invariants:
    - A session that raises is rolled back before the error leaves the context manager
    - Unique-constraint violations surface as ConflictError (409); any other
      SQLAlchemyError surfaces as DatabaseError (503)
    - TisTisError raised inside a session is rolled back and re-raised unchanged
    - SQLite URLs (tests, local tooling) get no pool sizing arguments

Design Decisions:
    - db_manager is created in the FastAPI lifespan, not at import time
    - expire_on_commit=False: ORM objects stay readable after commit in async code
    - Out-of-request writers (audit flusher, usage logging) open their own
      db_manager.session() so their commits never ride on a request transaction
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from tistis.core.errors import ConflictError, DatabaseError, TisTisError

logger = logging.getLogger(__name__)

_UNIQUE_MARKERS = ("unique", "duplicate key")


def engine_options(database_url: str, pool_size: int, max_overflow: int) -> dict:
    options = {"pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
        )
    return options


def translate_db_error(e: SQLAlchemyError) -> TisTisError:
    if isinstance(e, IntegrityError):
        if any(m in str(e.orig).lower() for m in _UNIQUE_MARKERS):
            return ConflictError("Resource already exists", "DUPLICATE_RESOURCE")
        return DatabaseError("Integrity constraint violated", "commit")
    if isinstance(e, OperationalError):
        return DatabaseError("Connection or operational error", "execute")
    if isinstance(e, DBAPIError):
        return DatabaseError("Database driver error", "query")
    return DatabaseError("Database operation failed", "unknown")


class DatabaseSessionManager:
    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        self.engine = create_async_engine(
            database_url, **engine_options(database_url, pool_size, max_overflow),
        )
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except TisTisError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"{type(e).__name__} in DB session: {e}")
            raise translate_db_error(e) from e
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """SELECT 1 through a fresh session; False on any failure."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session

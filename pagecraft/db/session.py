"""Engine helpers and the transaction boundary used by every service."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pagecraft.config import Settings

_ATOMIC_KEY = "pagecraft_atomic"


@asynccontextmanager
async def atomic(db_session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run a block as one unit of work: commit on success, roll back otherwise.

    Nested ``atomic`` blocks join the outermost one, so a service composed
    from other services still commits exactly once. Rollback also runs when
    the task is cancelled mid-operation.
    """
    if db_session.info.get(_ATOMIC_KEY):
        yield db_session
        return

    db_session.info[_ATOMIC_KEY] = True
    try:
        yield db_session
        await db_session.commit()
    except BaseException:
        await db_session.rollback()
        raise
    finally:
        db_session.info.pop(_ATOMIC_KEY, None)


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite leaves foreign keys off unless asked per connection."""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_engine(settings: Settings) -> AsyncEngine:
    """Build an async engine for the configured database."""
    if "sqlite" in settings.db.url:
        engine = create_async_engine(settings.db.url, echo=settings.db.echo)
    else:
        engine = create_async_engine(
            settings.db.url,
            echo=settings.db.echo,
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.pool_overflow,
            pool_timeout=settings.db.pool_timeout,
            pool_pre_ping=settings.db.pool_pre_ping,
        )
    enable_sqlite_foreign_keys(engine.sync_engine)
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


__all__ = ["atomic", "create_engine", "create_session_maker", "enable_sqlite_foreign_keys"]

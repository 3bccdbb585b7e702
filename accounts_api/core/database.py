"""
Database handle with SQLAlchemy async support.
Uses SQLite (aiosqlite) by default; any async SQLAlchemy URL works.

The handle is constructed explicitly at startup, stored on app.state and
disposed on shutdown. Request handlers get a session through get_db().
"""

from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy import DateTime, event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class UTCDateTime(TypeDecorator):
    """DateTime that always round-trips as an aware UTC value.

    SQLite drops tzinfo on storage, so values read back are naive; they are
    re-tagged as UTC here.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable SQLite foreign keys and secure delete."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA secure_delete=ON")
    cursor.close()


class Database:
    """Engine and session factory for one process."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo, future=True)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _set_sqlite_pragma)

    async def create_all(self) -> None:
        """Create tables for every registered model."""
        # Importing the models registers them on Base.metadata
        from accounts_api import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    def session(self) -> AsyncSession:
        return self.session_maker()

    async def close(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency for getting a database session bound to the app's handle."""
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session

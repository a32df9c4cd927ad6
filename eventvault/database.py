"""
EventVault — Async SQLAlchemy setup for the secondary index.

There is no module-level engine: every logical operation opens the index
file, uses it, and disposes the engine again, so no handle outlives a call.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DatabaseError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from eventvault.config import settings

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"


class Base(DeclarativeBase):
    pass


def index_path(events_dir: str | Path) -> Path:
    """Location of the index database for a hot store."""
    return Path(events_dir) / settings.index_filename


def _database_url(db_path: Path) -> str:
    return f"sqlite+aiosqlite:///{db_path}"


async def _create_schema(engine: AsyncEngine) -> None:
    # Registers the ORM tables on Base.metadata
    from eventvault.models.event_index import IndexMeta

    async with engine.begin() as conn:
        await conn.execute(text("PRAGMA journal_mode=WAL"))
        await conn.execute(text("PRAGMA synchronous=NORMAL"))
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(
            sqlite_insert(IndexMeta.__table__)
            .values(key="schema_version", value=SCHEMA_VERSION)
            .on_conflict_do_nothing(index_elements=["key"])
        )


async def init_event_index(events_dir: str | Path) -> AsyncEngine:
    """
    Open (or create) the index database beside *events_dir*.

    Idempotent: existing tables are kept and an existing schema_version
    marker is never overwritten.  A file that is not a valid SQLite database
    is deleted and recreated once; the index is always derivable.
    """
    db_path = index_path(events_dir)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(_database_url(db_path), echo=False)
    try:
        await _create_schema(engine)
        return engine
    except DatabaseError as e:
        await engine.dispose()
        logger.warning("⚠️  Index %s unreadable (%s) — recreating", db_path, e)

    remove_index_files(db_path)
    engine = create_async_engine(_database_url(db_path), echo=False)
    try:
        await _create_schema(engine)
    except Exception:
        await engine.dispose()
        raise
    return engine


def remove_index_files(db_path: Path) -> None:
    """Delete the database file plus its WAL/SHM side files."""
    for suffix in ("", "-wal", "-shm"):
        Path(f"{db_path}{suffix}").unlink(missing_ok=True)


@asynccontextmanager
async def open_event_index(events_dir: str | Path) -> AsyncIterator[AsyncSession]:
    """Yield a session on the index for one logical operation."""
    engine = await init_event_index(events_dir)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await engine.dispose()

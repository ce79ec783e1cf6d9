"""
Database utility functions for engine and session management.

Functions:
- create_engine: Creates async SQLAlchemy engine with URL normalization and statement timeouts
- create_sessionmaker: Creates async session factory with safe defaults
- create_all: Creates all billing tables from ORM metadata (for tests/dev)
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from . import entities  # noqa: F401  registers tables on Base.metadata
from .base import Base


def normalize_url(db_url: str) -> str:
    """Rewrite ``postgresql://`` and other variants to ``postgresql+asyncpg://``."""
    return re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)


def _connect_args(url: str, statement_timeout: Optional[float]) -> Dict[str, Any]:
    if statement_timeout is None:
        return {}
    if url.startswith("postgresql+asyncpg://"):
        return {"server_settings": {"statement_timeout": str(int(statement_timeout * 1000))}}
    if url.startswith("sqlite"):
        # Busy timeout: how long a writer waits for the database lock.
        return {"timeout": statement_timeout}
    return {}


def create_engine(db_url: str, *, statement_timeout: Optional[float] = None, echo: bool = False) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Postgres URLs are normalized to the asyncpg driver. When
    ``statement_timeout`` is given, Postgres sessions get a server-side
    ``statement_timeout`` and SQLite connections a matching busy timeout,
    so no statement blocks indefinitely on a lock.

    SQLite connections also get ``foreign_keys=ON`` so the ledger entry
    foreign key behaves as it does on Postgres.

    Args:
        db_url: Database connection URL
        statement_timeout: Per-statement timeout in seconds
        echo: Echo SQL statements

    Returns:
        Configured AsyncEngine instance
    """
    url = normalize_url(db_url)
    kwargs: Dict[str, Any] = {"echo": echo, "connect_args": _connect_args(url, statement_timeout)}
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    engine = create_async_engine(url, **kwargs)

    if url.startswith("sqlite"):

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project.

    Args:
        engine: Async SQLAlchemy engine

    Returns:
        Configured async session factory
    """
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata.

    This is mainly intended for tests and local development.
    Production should use Alembic migrations instead.

    Args:
        engine: Async SQLAlchemy engine
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""
Tenant directory.

Maps a user id to that user's isolated data store at
``<base_path>/tenants/<user_id>/brain.db`` and manages the store's
lifecycle. A store is provisioned on first use and never shared between
users. The directory shares nothing with billing except the user id.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Union

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from mentor_ledger.core.config import Settings
from mentor_ledger.core.logging_config import get_logger

from .schema import tenant_metadata

logger = get_logger(__name__)

TENANTS_DIR = "tenants"
STORE_FILE = "brain.db"

_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.@-]{0,127}$")


class InvalidTenantId(ValueError):
    """The user id cannot be used as a tenant directory name."""


def validate_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not _USER_ID_PATTERN.match(user_id) or ".." in user_id:
        raise InvalidTenantId(f"Invalid tenant user id: {user_id!r}")
    return user_id


@dataclass(frozen=True)
class TenantHandle:
    """Location of one user's store."""

    user_id: str
    directory: Path
    store_path: Path

    @property
    def url(self) -> str:
        """Async SQLAlchemy URL of the store."""
        return f"sqlite+aiosqlite:///{self.store_path}"

    def create_engine(self) -> AsyncEngine:
        return _store_engine(self.url)


def _store_engine(url: str) -> AsyncEngine:
    engine = create_async_engine(url)

    @event.listens_for(engine.sync_engine, "connect")
    def _configure(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


@dataclass
class _UserLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class TenantDirectory:
    """Resolves and provisions per-user tenant stores under ``base_path``."""

    def __init__(self, base_path: Union[str, Path]) -> None:
        self.base_path = Path(base_path)
        self._locks: Dict[str, _UserLock] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantDirectory":
        return cls(settings.tenant.base_path)

    @property
    def tenants_path(self) -> Path:
        return self.base_path / TENANTS_DIR

    def _handle(self, user_id: str) -> TenantHandle:
        directory = self.tenants_path / validate_user_id(user_id)
        return TenantHandle(user_id=user_id, directory=directory, store_path=directory / STORE_FILE)

    @asynccontextmanager
    async def _lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialize work on one user's store; the entry lives only while someone holds or awaits it."""
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _UserLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[user_id]

    def exists(self, user_id: str) -> bool:
        return self._handle(user_id).store_path.is_file()

    def resolve(self, user_id: str) -> Optional[TenantHandle]:
        """Handle of an already provisioned store, or None."""
        handle = self._handle(user_id)
        return handle if handle.store_path.is_file() else None

    async def provision(self, user_id: str) -> TenantHandle:
        """Create the store for ``user_id`` if needed and return its handle.

        Safe to call repeatedly; an existing store is left as it is apart
        from creating tables it lacks.
        """
        handle = self._handle(user_id)
        async with self._lock(user_id):
            created = not handle.store_path.exists()
            handle.directory.mkdir(parents=True, exist_ok=True)
            engine = handle.create_engine()
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(tenant_metadata.create_all)
            finally:
                await engine.dispose()
        if created:
            logger.info(f"Provisioned tenant store for user_id={user_id} at {handle.store_path}")
        return handle

    def list_tenants(self) -> List[str]:
        if not self.tenants_path.is_dir():
            return []
        return sorted(
            path.name for path in self.tenants_path.iterdir() if path.is_dir() and (path / STORE_FILE).is_file()
        )

    async def delete(self, user_id: str) -> bool:
        """Remove a user's store and its directory.

        Returns:
            False when there was nothing to delete
        """
        handle = self._handle(user_id)
        async with self._lock(user_id):
            if not handle.directory.exists():
                return False
            await asyncio.to_thread(shutil.rmtree, handle.directory)
        logger.info(f"Deleted tenant store for user_id={user_id}")
        return True

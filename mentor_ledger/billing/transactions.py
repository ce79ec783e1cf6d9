"""
Transaction runner for ledger operations.

Each ledger operation is one unit of work: a fresh session, one transaction,
commit on success, rollback on any exception. The runner adds the two
guarantees every operation shares:

- a time budget; an attempt that exceeds it is cancelled, rolled back and
  reported as ``StorageTimeout``;
- lock and serialization failures are rolled back and retried with
  exponential backoff, surfacing as ``StorageConflict`` once retries run out.

Driver errors that are neither (constraint violations, connection loss) are
propagated unchanged.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mentor_ledger.core.logging_config import get_logger

from .errors import StorageConflict, StorageTimeout

logger = get_logger(__name__)

T = TypeVar("T")
Work = Callable[[AsyncSession], Awaitable[T]]

# Postgres SQLSTATE codes
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
LOCK_NOT_AVAILABLE = "55P03"
QUERY_CANCELED = "57014"  # raised when statement_timeout fires

CONFLICT_SQLSTATES = frozenset({SERIALIZATION_FAILURE, DEADLOCK_DETECTED, LOCK_NOT_AVAILABLE})
SQLITE_LOCK_MESSAGES = ("database is locked", "database table is locked")


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_timeout(exc: DBAPIError) -> bool:
    return _sqlstate(exc) == QUERY_CANCELED


def is_conflict(exc: DBAPIError) -> bool:
    if _sqlstate(exc) in CONFLICT_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return any(text in message for text in SQLITE_LOCK_MESSAGES)


@dataclass(frozen=True)
class TransactionRunner:
    """Runs units of work against the billing store."""

    session_factory: async_sessionmaker[AsyncSession]
    timeout: float = 5.0
    conflict_retries: int = 3
    backoff: float = 0.05

    async def run(self, operation: str, work: Work[T], *, user_id: Optional[str] = None) -> T:
        """Run ``work`` inside one transaction.

        Args:
            operation: Name used in logs and errors
            work: Coroutine function receiving the transaction's session
            user_id: Account the work is scoped to, for logs and errors

        Returns:
            Whatever ``work`` returns, after the commit

        Raises:
            StorageTimeout: the attempt exceeded ``timeout``
            StorageConflict: lock conflicts persisted through every retry
        """
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(self._attempt(work), timeout=self.timeout)
            except asyncio.TimeoutError as exc:
                logger.error(f"{operation} timed out after {self.timeout}s (user_id={user_id})")
                raise StorageTimeout(operation, f"exceeded {self.timeout}s", user_id) from exc
            except DBAPIError as exc:
                if is_timeout(exc):
                    logger.error(f"{operation} cancelled by statement timeout (user_id={user_id})")
                    raise StorageTimeout(operation, "statement timeout", user_id) from exc
                if not is_conflict(exc):
                    raise
                if attempt >= self.conflict_retries:
                    logger.error(f"{operation} gave up after {attempt + 1} conflicting attempts (user_id={user_id})")
                    raise StorageConflict(operation, str(exc.orig), user_id) from exc
                delay = self.backoff * (2**attempt)
                attempt += 1
                logger.warning(
                    f"{operation} hit a lock conflict (user_id={user_id}); retry {attempt}/{self.conflict_retries} "
                    f"in {delay:.3f}s"
                )
                await asyncio.sleep(delay)

    async def _attempt(self, work: Work[T]) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                return await work(session)

"""
Session-scoped repositories for the billing tables.

Each repository wraps one table; none of them commits.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from .accounts import AccountRepository
from .base import QueryBuilder, SessionRepository
from .idempotency_records import IdempotencyRecordRepository
from .ledger_entries import LedgerEntryRepository


@dataclass(frozen=True)
class BillingRepositories:
    """Repositories sharing one session and therefore one transaction."""

    accounts: AccountRepository
    entries: LedgerEntryRepository
    idempotency: IdempotencyRecordRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "BillingRepositories":
        return cls(
            accounts=AccountRepository(session),
            entries=LedgerEntryRepository(session),
            idempotency=IdempotencyRecordRepository(session),
        )


__all__ = [
    "AccountRepository",
    "BillingRepositories",
    "IdempotencyRecordRepository",
    "LedgerEntryRepository",
    "QueryBuilder",
    "SessionRepository",
]

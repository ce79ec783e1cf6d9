"""
Ledger entry repository.

Append and read only: the transaction log has no update path.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import case, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..entities.ledger_entries import LedgerEntry
from .base import NO_SYNC, QueryBuilder, SessionRepository


class LedgerEntryRepository(SessionRepository[LedgerEntry]):
    """Data access for ``billing_ledger_entries``."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, LedgerEntry)

    async def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Append one entry to the log."""
        return await self.add(entry)

    async def list_for_user(
        self,
        user_id: str,
        *,
        since: Optional[datetime] = None,
        limit: Optional[int] = 100,
        offset: Optional[int] = None,
    ) -> List[LedgerEntry]:
        """Entries for a user, newest first.

        Args:
            user_id: Account owner
            since: Only entries created at or after this instant
            limit: Maximum number of entries
            offset: Number of entries to skip

        Returns:
            List of ledger entries
        """
        stmt = select(LedgerEntry).where(LedgerEntry.user_id == user_id)
        if since is not None:
            stmt = stmt.where(LedgerEntry.created_at >= since)
        stmt = stmt.order_by(LedgerEntry.created_at.desc(), LedgerEntry.entry_id.desc())
        stmt = QueryBuilder.apply_pagination(stmt, limit, offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sums(self, user_id: Optional[str] = None) -> Tuple[int, int, int, int, int, int]:
        """Aggregate the log.

        Returns:
            ``(units_used, units_purchased, trial_units, cost_cents, revenue_cents, entry_count)``
            for one user, or for all users when ``user_id`` is None
        """
        debit = LedgerEntry.amount < 0
        stmt = select(
            func.coalesce(func.sum(case((debit, -LedgerEntry.amount), else_=0)), 0),
            func.coalesce(func.sum(case((debit, 0), else_=LedgerEntry.amount)), 0),
            func.coalesce(
                func.sum(case((LedgerEntry.charged_to_trial.is_(True), -LedgerEntry.amount), else_=0)), 0
            ),
            func.coalesce(func.sum(LedgerEntry.cost_cents), 0),
            func.coalesce(func.sum(LedgerEntry.price_cents), 0),
            func.count(LedgerEntry.entry_id),
        )
        if user_id is not None:
            stmt = stmt.where(LedgerEntry.user_id == user_id)
        row = (await self.session.execute(stmt)).one()
        return tuple(int(value) for value in row)  # type: ignore[return-value]

    async def remove_for_user(self, user_id: str) -> int:
        """Delete a user's entries; only used when the user itself is deleted."""
        stmt = delete(LedgerEntry).where(LedgerEntry.user_id == user_id).execution_options(**NO_SYNC)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

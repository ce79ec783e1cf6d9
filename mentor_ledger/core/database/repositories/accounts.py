"""
Account repository.

Every mutating ledger transaction starts with one of the ``UPDATE``
statements below. The update takes the account's row lock on Postgres and
the database write lock on SQLite, which linearizes concurrent operations on
the same user while leaving other users' rows free.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import case, delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from mentor_ledger.core.models.domain.enums import AccountStatus

from ..entities.accounts import Account
from .base import NO_SYNC, SessionRepository


class AccountRepository(SessionRepository[Account]):
    """Data access for ``billing_accounts``."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Account)

    async def lock(self, user_id: str, now: datetime) -> bool:
        """Take the account's write lock by touching ``updated_at``.

        Returns:
            False when no account exists for ``user_id``
        """
        stmt = update(Account).where(Account.user_id == user_id).values(updated_at=now).execution_options(**NO_SYNC)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def charge_usage(self, user_id: str, units: int, now: datetime) -> Optional[str]:
        """Add ``units`` to the trial counter if, and only if, the account is on trial.

        The status test and the increment are one statement, so the counter
        cannot miss a concurrent status change.

        Returns:
            The account status the usage was charged under, or None when the
            account does not exist
        """
        increment = case((Account.status == AccountStatus.trial.value, units), else_=0)
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(trial_units_used=Account.trial_units_used + increment, updated_at=now)
            .returning(Account.status)
            .execution_options(**NO_SYNC)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_purchased(self, user_id: str, units: int, now: datetime) -> None:
        """Increment ``lifetime_units_purchased``."""
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values(lifetime_units_purchased=Account.lifetime_units_purchased + units, updated_at=now)
            .execution_options(**NO_SYNC)
        )
        await self.session.execute(stmt)

    async def expire_lapsed(self, now: datetime) -> int:
        """Mark active accounts whose ``paid_until`` has passed as expired.

        Returns:
            Number of accounts changed
        """
        stmt = (
            update(Account)
            .where(Account.status == AccountStatus.active.value)
            .where(Account.paid_until <= now)
            .values(status=AccountStatus.expired.value, updated_at=now)
            .execution_options(**NO_SYNC)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def remove(self, user_id: str) -> bool:
        """Delete the account row."""
        result = await self.session.execute(delete(Account).where(Account.user_id == user_id).execution_options(**NO_SYNC))
        return result.rowcount == 1

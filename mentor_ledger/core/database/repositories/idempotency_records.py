"""Idempotency record repository."""

from __future__ import annotations

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.idempotency_records import IdempotencyRecord
from .base import NO_SYNC, SessionRepository


class IdempotencyRecordRepository(SessionRepository[IdempotencyRecord]):
    """Data access for ``billing_idempotency_records``."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, IdempotencyRecord)

    async def remove_for_user(self, user_id: str) -> int:
        stmt = delete(IdempotencyRecord).where(IdempotencyRecord.user_id == user_id).execution_options(**NO_SYNC)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

"""
Idempotency record entity.

The primary key on ``external_reference`` is the race-breaker for repeated
payment deliveries: a second insert for the same reference fails with a
uniqueness violation.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field

from ..base import Base, utc_now


class IdempotencyRecord(Base, table=True):
    """Entity marking an external payment reference as applied.

    Table: billing_idempotency_records
    """

    __tablename__ = "billing_idempotency_records"

    external_reference: str = Field(primary_key=True, max_length=128)
    user_id: str = Field(max_length=128, index=True)
    entry_id: str = Field(max_length=64)
    applied_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))

    def __repr__(self) -> str:
        return f"IdempotencyRecord(external_reference={self.external_reference}, user_id={self.user_id})"

"""
Billing account entity.

One row per user holding the access-gating fields and the counters that
project the transaction log. Rows are only mutated by the usage ledger.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Column, DateTime
from sqlmodel import Field

from ..base import Base, utc_now


class Account(Base, table=True):
    """Entity for a user's billing record.

    Table: billing_accounts
    """

    __tablename__ = "billing_accounts"

    user_id: str = Field(primary_key=True, max_length=128)
    status: str = Field(default="trial", max_length=16)

    trial_units_used: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    trial_units_limit: int = Field(sa_column=Column(BigInteger, nullable=False))
    lifetime_units_purchased: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))

    paid_until: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))

    def __repr__(self) -> str:
        return f"Account(user_id={self.user_id}, status={self.status}, trial_units_used={self.trial_units_used})"

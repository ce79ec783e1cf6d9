"""
Ledger entry entity.

The transaction log: one immutable row per usage debit or purchase credit.
Rows are appended and never updated; they are only removed together with
their account when the user is deleted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, String
from sqlmodel import Field

from mentor_ledger.core.models.domain.enums import LedgerEntryKind

from ..base import Base, utc_now


class LedgerEntry(Base, table=True):
    """Entity for one signed balance movement.

    ``amount`` is negative for usage debits and positive for purchase credits.

    Table: billing_ledger_entries
    """

    __tablename__ = "billing_ledger_entries"
    __table_args__ = (Index("ix_billing_ledger_entries_user_created", "user_id", "created_at"),)

    entry_id: str = Field(primary_key=True, max_length=64)
    user_id: str = Field(
        sa_column=Column(
            String(128),
            ForeignKey("billing_accounts.user_id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    amount: int = Field(sa_column=Column(BigInteger, nullable=False))

    # Debits
    cost_cents: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    provider: Optional[str] = Field(default=None, max_length=64)
    model: Optional[str] = Field(default=None, max_length=128)
    input_units: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    output_units: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    charged_to_trial: bool = Field(default=False)

    # Credits
    price_cents: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    external_reference: Optional[str] = Field(default=None, max_length=128)

    description: Optional[str] = Field(default=None, max_length=512)
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))

    @property
    def kind(self) -> LedgerEntryKind:
        # Usage debits always carry a cost, credits never do; a zero-unit call has amount 0.
        return LedgerEntryKind.debit if self.cost_cents is not None else LedgerEntryKind.credit

    def __repr__(self) -> str:
        return f"LedgerEntry(entry_id={self.entry_id}, user_id={self.user_id}, amount={self.amount})"

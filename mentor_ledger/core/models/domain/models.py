"""Result models returned by ledger operations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from ..base import BaseSchema
from .enums import AccountStatus, PaymentOutcome


class UsageRecorded(BaseSchema):
    """A debit appended for one completed model call."""

    entry_id: str
    user_id: str
    total_units: int
    cost_cents: int
    charged_to_trial: bool


class CreditResult(BaseSchema):
    """
    Outcome of a purchase credit.

    ``applied`` is False when the external reference had already been applied;
    ``entry_id`` then points at the credit written by the first delivery.
    """

    applied: bool
    external_reference: str
    entry_id: Optional[str] = None


class SubscriptionResult(BaseSchema):
    """Access-gating fields after an activation."""

    user_id: str
    status: AccountStatus
    paid_until: datetime


class PurchaseResult(BaseSchema):
    """Credit plus activation applied as one unit."""

    credit: CreditResult
    paid_until: Optional[datetime] = None

    @property
    def applied(self) -> bool:
        return self.credit.applied


class UsageSummary(BaseSchema):
    """Per-user figures derived from the transaction log."""

    user_id: str
    units_used: int = 0
    units_purchased: int = 0
    cost_cents: int = 0
    revenue_cents: int = 0
    entry_count: int = 0


class LedgerTotals(BaseSchema):
    """Figures across all users, for operator reporting."""

    units_used: int = 0
    cost_cents: int = 0
    revenue_cents: int = 0


class ReconciliationReport(BaseSchema):
    """Account counters compared with the values reconstructed from the log."""

    user_id: str
    trial_units_used: int
    logged_trial_units: int
    lifetime_units_purchased: int
    logged_units_purchased: int

    @property
    def consistent(self) -> bool:
        return (
            self.trial_units_used == self.logged_trial_units
            and self.lifetime_units_purchased == self.logged_units_purchased
        )


class PaymentResult(BaseSchema):
    """Result of one payment notification."""

    outcome: PaymentOutcome
    reason: Optional[str] = None
    external_reference: Optional[str] = None
    user_id: Optional[str] = None
    package: Optional[str] = None
    newly_applied: bool = Field(default=False, description="False for a repeated delivery of an applied payment")
    paid_until: Optional[datetime] = None

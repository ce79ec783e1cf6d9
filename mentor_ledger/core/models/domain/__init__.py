"""Domain models and enums for the billing ledger.

These types are shared between the ledger, the payment notification
processor and callers of both. They carry no persistence behaviour.
"""

from .enums import AccessResult, AccountStatus, LedgerEntryKind, PaymentOutcome, PaymentStatus
from .models import (
    CreditResult,
    LedgerTotals,
    PaymentResult,
    PurchaseResult,
    ReconciliationReport,
    SubscriptionResult,
    UsageRecorded,
    UsageSummary,
)

__all__ = [
    "AccessResult",
    "AccountStatus",
    "CreditResult",
    "LedgerEntryKind",
    "LedgerTotals",
    "PaymentOutcome",
    "PaymentResult",
    "PaymentStatus",
    "PurchaseResult",
    "ReconciliationReport",
    "SubscriptionResult",
    "UsageRecorded",
    "UsageSummary",
]

"""Domain enums for the billing ledger."""

from __future__ import annotations

from enum import Enum


class AccountStatus(str, Enum):
    """Billing status of an account."""

    trial = "trial"
    active = "active"
    expired = "expired"


class AccessResult(str, Enum):
    """
    Outcome of an access check.

    Every denial is a distinct status so the caller can route the user to
    the purchase flow (trial over) or the renewal flow (subscription lapsed).
    """

    allowed = "allowed"
    trial_exhausted = "trial_exhausted"
    trial_expired = "trial_expired"  # Only with a configured trial period.
    subscription_expired = "subscription_expired"
    unknown_account = "unknown_account"

    @property
    def is_allowed(self) -> bool:
        return self is AccessResult.allowed


class LedgerEntryKind(str, Enum):
    """Direction of a ledger entry, derived from the sign of its amount."""

    debit = "debit"
    credit = "credit"


class PaymentStatus(str, Enum):
    """Payment statuses reported by the processor."""

    paid = "paid"
    paid_over = "paid_over"
    wrong_amount = "wrong_amount"
    process = "process"
    confirm_check = "confirm_check"
    confirm = "confirm"
    cancel = "cancel"
    fail = "fail"
    failed = "failed"
    system_fail = "system_fail"
    refund_process = "refund_process"
    refund_fail = "refund_fail"
    refund_paid = "refund_paid"


class PaymentOutcome(str, Enum):
    """Result of processing one payment notification."""

    applied = "applied"
    pending = "pending"
    rejected = "rejected"
    ignored = "ignored"
    invalid_signature = "invalid_signature"

"""
Billing error taxonomy.

``retryable`` tells the caller whether repeating the same call can succeed.
All ledger mutations are atomic, so a retryable failure never leaves partial
state behind.
"""

from __future__ import annotations

from typing import Optional


class BillingError(Exception):
    """Base class for ledger failures."""

    retryable: bool = False


class UnknownAccount(BillingError):
    """The user has no billing record."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No billing account for user {user_id!r}")
        self.user_id = user_id


class UnknownRate(BillingError):
    """The rate table has no entry for a provider/model pair."""

    def __init__(self, provider: str, model: str) -> None:
        super().__init__(f"No rate configured for provider={provider!r} model={model!r}")
        self.provider = provider
        self.model = model


class InvalidAmount(BillingError, ValueError):
    """A unit count, price or day count violates its precondition."""

    def __init__(self, field: str, value: object, requirement: str) -> None:
        super().__init__(f"{field} must be {requirement}, got {value!r}")
        self.field = field
        self.value = value


class InvalidSignature(BillingError):
    """A payment notification failed signature verification."""

    def __init__(self, reason: str = "signature mismatch") -> None:
        super().__init__(f"Payment notification rejected: {reason}")
        self.reason = reason


class PaymentsNotConfigured(BillingError):
    """No shared secret is configured, so no notification can be trusted."""

    def __init__(self) -> None:
        super().__init__("Payment notifications cannot be verified: CRYPTOMUS_API_KEY is not set")


class StorageError(BillingError):
    """The billing store failed the operation."""

    def __init__(self, operation: str, detail: str, user_id: Optional[str] = None) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.user_id = user_id


class StorageTimeout(StorageError):
    """The transaction exceeded its time budget and was rolled back."""

    retryable = True


class StorageConflict(StorageError):
    """The transaction lost a lock or serialization race and was rolled back."""

    retryable = True

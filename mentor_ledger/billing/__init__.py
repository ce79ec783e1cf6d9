"""
Usage and billing ledger.

- ``rates``: cost of usage per provider and model
- ``ledger``: usage debits, purchase credits and access decisions
- ``payments``: signed payment notifications turned into purchases
- ``packages``: purchasable token packages and order ids
"""

from .errors import (
    BillingError,
    InvalidAmount,
    InvalidSignature,
    PaymentsNotConfigured,
    StorageConflict,
    StorageError,
    StorageTimeout,
    UnknownAccount,
    UnknownRate,
)
from .ledger import UsageLedger
from .packages import TOKEN_PACKAGES, TokenPackage, build_order_id, parse_order_id
from .payments import PaymentProcessor
from .rates import ModelRate, RateTable, default_rate_table

__all__ = [
    "BillingError",
    "InvalidAmount",
    "InvalidSignature",
    "ModelRate",
    "PaymentProcessor",
    "PaymentsNotConfigured",
    "RateTable",
    "StorageConflict",
    "StorageError",
    "StorageTimeout",
    "TOKEN_PACKAGES",
    "TokenPackage",
    "UnknownAccount",
    "UnknownRate",
    "UsageLedger",
    "build_order_id",
    "default_rate_table",
    "parse_order_id",
]

"""
Billing table entities.

Importing this package registers every table on ``Base.metadata``.
"""

from .accounts import Account
from .idempotency_records import IdempotencyRecord
from .ledger_entries import LedgerEntry

__all__ = ["Account", "IdempotencyRecord", "LedgerEntry"]

"""
Database layer for the billing ledger.

Structure:
- entities/: Billing table entities (accounts, ledger entries, idempotency records)
- repositories/: Session-scoped data access used inside ledger transactions
- utils.py: Engine, session factory and schema helpers
"""

from .base import Base, as_utc, utc_now
from .utils import create_all, create_engine, create_sessionmaker, normalize_url

__all__ = [
    "Base",
    "as_utc",
    "create_all",
    "create_engine",
    "create_sessionmaker",
    "normalize_url",
    "utc_now",
]

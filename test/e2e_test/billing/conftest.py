"""Fixtures for ledger tests against a file-backed SQLite database.

A file database lets concurrent transactions run on separate connections,
so the ledger's locking is exercised for real.
"""

from __future__ import annotations

import pytest

from mentor_ledger.billing.ledger import UsageLedger
from mentor_ledger.core.database import create_all, create_engine, create_sessionmaker

@pytest.fixture
async def file_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", statement_timeout=10.0)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def file_sessions(file_engine):
    return create_sessionmaker(file_engine)


@pytest.fixture
def file_ledger(file_sessions, rate_table, clock) -> UsageLedger:
    return UsageLedger(
        file_sessions,
        rates=rate_table,
        clock=clock,
        timeout=10.0,
        conflict_retries=10,
        retry_backoff=0.01,
    )


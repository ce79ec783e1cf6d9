from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from dotenv import load_dotenv

TEST_ROOT = Path(__file__).resolve().parent
# Load test/.env first, then fallback to test/.env.example for defaults
load_dotenv(TEST_ROOT / ".env", override=False)
load_dotenv(TEST_ROOT / ".env.example", override=False)

# Import test settings after dotenv is loaded
from test.settings import test_settings  # noqa: E402

from mentor_ledger.billing.ledger import UsageLedger  # noqa: E402
from mentor_ledger.billing.rates import ModelRate, RateTable, default_rate_table  # noqa: E402
from mentor_ledger.core.database import create_all, create_engine, create_sessionmaker  # noqa: E402

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture(scope="session")
def test_config():
    """Fixture providing test configuration from Pydantic settings model.

    Returns:
        TestSettings: Test configuration with all environment variables loaded
    """
    return test_settings


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def rate_table() -> RateTable:
    """Built-in rates plus a free test model and a round-number paid one."""
    return RateTable.of(
        [
            *default_rate_table(),
            ModelRate.quote("groq", "free-model", 0, 0),
            ModelRate.quote("acme", "paid-model", 100, 200),
        ]
    )


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database with the billing tables."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_sessionmaker(db_engine)


@pytest.fixture
def ledger(session_factory, rate_table, clock) -> UsageLedger:
    """Ledger over the in-memory database with a controllable clock."""
    return UsageLedger(session_factory, rates=rate_table, clock=clock, retry_backoff=0)

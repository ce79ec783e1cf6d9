"""Ledger behaviour on PostgreSQL, where each account has its own row lock.

Enabled with ``DATABASE__ENABLE_POSTGRES_TESTS=true``; needs Docker.
"""

import asyncio
from test.settings import test_settings

import pytest
from sqlalchemy import text

from mentor_ledger.billing.errors import StorageTimeout
from mentor_ledger.billing.ledger import UsageLedger
from mentor_ledger.core.database import create_all, create_engine, create_sessionmaker
from mentor_ledger.core.database.base import Base
from mentor_ledger.core.models.domain import AccessResult

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(
        not test_settings.database.enable_postgres_tests,
        reason="PostgreSQL tests disabled (set DATABASE__ENABLE_POSTGRES_TESTS=true)",
    ),
]


@pytest.fixture(scope="module")
def postgres_url():
    from testcontainers.postgres import PostgresContainer

    config = test_settings.database.postgres
    container = PostgresContainer(
        config.image,
        username=config.user,
        password=config.password.get_secret_value(),
        dbname=config.db,
    )
    with container:
        yield container.get_connection_url()


@pytest.fixture
async def pg_engine(postgres_url):
    engine = create_engine(postgres_url, statement_timeout=5.0)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def pg_ledger(pg_engine, rate_table, clock) -> UsageLedger:
    return UsageLedger(create_sessionmaker(pg_engine), rates=rate_table, clock=clock, timeout=5.0)


async def test_usage_across_users_is_exact(pg_ledger):
    users = [f"pg-{index}" for index in range(4)]
    for user_id in users:
        await pg_ledger.open_account(user_id)

    await asyncio.gather(
        *(pg_ledger.record_usage(user_id, "acme", "paid-model", 1000, 1000) for user_id in users for _ in range(10))
    )

    for user_id in users:
        assert (await pg_ledger.get_account(user_id)).trial_units_used == 20_000
        assert (await pg_ledger.reconcile(user_id)).consistent


async def test_duplicate_credits_race_on_postgres(pg_ledger):
    await pg_ledger.open_account("pg-user")

    results = await asyncio.gather(*(pg_ledger.add_tokens("pg-user", 100_000, 500, "pg-pay") for _ in range(8)))

    assert sum(result.applied for result in results) == 1
    assert (await pg_ledger.get_account("pg-user")).lifetime_units_purchased == 100_000


async def test_trial_exhaustion_on_postgres(pg_ledger):
    await pg_ledger.open_account("pg-user", trial_units_limit=1000)

    await pg_ledger.record_usage("pg-user", "groq", "free-model", 600, 400)

    assert await pg_ledger.check_access("pg-user") is AccessResult.trial_exhausted


async def test_blocked_row_lock_times_out(pg_engine, rate_table, clock):
    await UsageLedger(create_sessionmaker(pg_engine), rates=rate_table, clock=clock).open_account("pg-user")
    impatient = UsageLedger(create_sessionmaker(pg_engine), rates=rate_table, clock=clock, timeout=0.5)

    async with pg_engine.connect() as holder:
        await holder.execute(text("SELECT 1 FROM billing_accounts WHERE user_id = 'pg-user' FOR UPDATE"))
        with pytest.raises(StorageTimeout):
            await impatient.record_usage("pg-user", "groq", "free-model", 1, 1)
        await holder.rollback()

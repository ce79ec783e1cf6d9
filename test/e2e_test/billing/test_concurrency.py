"""Concurrent ledger operations on a file-backed SQLite database."""

import asyncio

from sqlalchemy import func, select

from mentor_ledger.core.database.entities import Account, IdempotencyRecord, LedgerEntry
from mentor_ledger.core.models.domain import AccessResult

USERS = [f"user-{index}" for index in range(5)]
CALLS_PER_USER = 8


async def _count(sessions, model, **filters) -> int:
    stmt = select(func.count()).select_from(model)
    for column, value in filters.items():
        stmt = stmt.where(getattr(model, column) == value)
    async with sessions() as session:
        return (await session.execute(stmt)).scalar_one()


async def test_concurrent_usage_is_never_lost(file_ledger):
    for user_id in USERS:
        await file_ledger.open_account(user_id)

    await asyncio.gather(
        *(
            file_ledger.record_usage(user_id, "groq", "free-model", 100, call)
            for user_id in USERS
            for call in range(CALLS_PER_USER)
        )
    )

    expected = CALLS_PER_USER * 100 + sum(range(CALLS_PER_USER))
    for user_id in USERS:
        account = await file_ledger.get_account(user_id)
        summary = await file_ledger.usage_summary(user_id)
        assert account.trial_units_used == expected
        assert summary.units_used == expected
        assert summary.entry_count == CALLS_PER_USER
        assert (await file_ledger.reconcile(user_id)).consistent


async def test_racing_past_check_access_overruns_by_bounded_amount(file_ledger):
    await file_ledger.open_account("u1", trial_units_limit=100)
    await file_ledger.record_usage("u1", "groq", "free-model", 99, 0)

    decisions = await asyncio.gather(file_ledger.check_access("u1"), file_ledger.check_access("u1"))
    assert decisions == [AccessResult.allowed, AccessResult.allowed]

    await asyncio.gather(
        file_ledger.record_usage("u1", "groq", "free-model", 30, 0),
        file_ledger.record_usage("u1", "groq", "free-model", 20, 0),
    )

    account = await file_ledger.get_account("u1")
    assert account.trial_units_used == 149
    assert await file_ledger.check_access("u1") is AccessResult.trial_exhausted


async def test_concurrent_duplicate_credit_applies_once(file_ledger, file_sessions):
    await file_ledger.open_account("u1")

    results = await asyncio.gather(*(file_ledger.add_tokens("u1", 100_000, 500, "pay-dup") for _ in range(6)))

    applied = [result for result in results if result.applied]
    assert len(applied) == 1
    assert {result.entry_id for result in results} == {applied[0].entry_id}
    assert (await file_ledger.get_account("u1")).lifetime_units_purchased == 100_000
    assert await _count(file_sessions, LedgerEntry, user_id="u1") == 1
    assert await _count(file_sessions, IdempotencyRecord, external_reference="pay-dup") == 1


async def test_concurrent_purchase_and_usage_on_one_user(file_ledger):
    await file_ledger.open_account("u1")

    await asyncio.gather(
        file_ledger.apply_purchase("u1", 500_000, 2000, "pay-1", days=30),
        *(file_ledger.record_usage("u1", "acme", "paid-model", 10, 10) for _ in range(5)),
    )

    account = await file_ledger.get_account("u1")
    summary = await file_ledger.usage_summary("u1")
    assert account.lifetime_units_purchased == 500_000
    assert summary.units_used == 100
    assert summary.units_purchased == 500_000
    assert (await file_ledger.reconcile("u1")).consistent


async def test_concurrent_open_account_creates_one_row(file_ledger, file_sessions):
    accounts = await asyncio.gather(*(file_ledger.open_account("u1") for _ in range(4)))

    assert {account.user_id for account in accounts} == {"u1"}
    assert await _count(file_sessions, Account) == 1

"""Unit tests for AccountRepository against in-memory SQLite."""

from datetime import datetime, timedelta, timezone

import pytest

from mentor_ledger.core.database.entities import Account
from mentor_ledger.core.database.repositories import AccountRepository

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        async with session.begin():
            session.add_all(
                [
                    Account(user_id="trial", status="trial", trial_units_limit=1000, created_at=NOW, updated_at=NOW),
                    Account(
                        user_id="paid",
                        status="active",
                        trial_units_limit=1000,
                        paid_until=NOW + timedelta(days=5),
                        created_at=NOW,
                        updated_at=NOW,
                    ),
                    Account(
                        user_id="lapsed",
                        status="active",
                        trial_units_limit=1000,
                        paid_until=NOW - timedelta(days=1),
                        created_at=NOW,
                        updated_at=NOW,
                    ),
                ]
            )
    return session_factory


async def _load(factory, user_id: str) -> Account:
    async with factory() as session:
        return await session.get(Account, user_id)


class TestLock:
    async def test_lock_existing_account(self, seeded):
        later = NOW + timedelta(minutes=1)
        async with seeded() as session:
            async with session.begin():
                assert await AccountRepository(session).lock("trial", later) is True

        account = await _load(seeded, "trial")
        assert account.updated_at.replace(tzinfo=timezone.utc) == later

    async def test_lock_missing_account(self, seeded):
        async with seeded() as session:
            async with session.begin():
                assert await AccountRepository(session).lock("nobody", NOW) is False


class TestChargeUsage:
    async def test_trial_counter_incremented(self, seeded):
        async with seeded() as session:
            async with session.begin():
                status = await AccountRepository(session).charge_usage("trial", 1500, NOW)

        assert status == "trial"
        assert (await _load(seeded, "trial")).trial_units_used == 1500

    async def test_active_account_counter_untouched(self, seeded):
        async with seeded() as session:
            async with session.begin():
                status = await AccountRepository(session).charge_usage("paid", 700, NOW)

        assert status == "active"
        assert (await _load(seeded, "paid")).trial_units_used == 0

    async def test_missing_account(self, seeded):
        async with seeded() as session:
            async with session.begin():
                assert await AccountRepository(session).charge_usage("nobody", 1, NOW) is None


class TestCountersAndSweep:
    async def test_add_purchased(self, seeded):
        async with seeded() as session:
            async with session.begin():
                repo = AccountRepository(session)
                await repo.add_purchased("paid", 100_000, NOW)
                await repo.add_purchased("paid", 500_000, NOW)

        assert (await _load(seeded, "paid")).lifetime_units_purchased == 600_000

    async def test_expire_lapsed(self, seeded):
        async with seeded() as session:
            async with session.begin():
                changed = await AccountRepository(session).expire_lapsed(NOW)

        assert changed == 1
        assert (await _load(seeded, "lapsed")).status == "expired"
        assert (await _load(seeded, "paid")).status == "active"
        assert (await _load(seeded, "trial")).status == "trial"

    async def test_remove(self, seeded):
        async with seeded() as session:
            async with session.begin():
                repo = AccountRepository(session)
                assert await repo.remove("trial") is True
                assert await repo.remove("trial") is False

        assert await _load(seeded, "trial") is None

    async def test_get_fresh_reloads(self, seeded):
        async with seeded() as session:
            async with session.begin():
                repo = AccountRepository(session)
                stale = await repo.get("trial")
                await repo.charge_usage("trial", 10, NOW)
                assert stale.trial_units_used == 0
                fresh = await repo.get("trial", fresh=True)

        assert fresh is stale
        assert fresh.trial_units_used == 10

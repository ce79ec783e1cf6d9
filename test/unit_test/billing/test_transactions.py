"""Unit tests for the transaction runner."""

import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from mentor_ledger.billing.errors import StorageConflict, StorageTimeout
from mentor_ledger.billing.transactions import TransactionRunner, is_conflict, is_timeout
from mentor_ledger.core.database.entities import Account


def _account(user_id: str) -> Account:
    return Account(user_id=user_id, trial_units_limit=10)


def _locked() -> OperationalError:
    return OperationalError("UPDATE billing_accounts", {}, Exception("database is locked"))


def _pg_error(sqlstate: str) -> OperationalError:
    return OperationalError("UPDATE billing_accounts", {}, SimpleNamespace(sqlstate=sqlstate))


class TestErrorClassification:
    def test_sqlite_lock_is_conflict(self):
        assert is_conflict(_locked())

    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
    def test_postgres_conflicts(self, sqlstate):
        assert is_conflict(_pg_error(sqlstate))
        assert not is_timeout(_pg_error(sqlstate))

    def test_postgres_statement_timeout(self):
        assert is_timeout(_pg_error("57014"))
        assert not is_conflict(_pg_error("57014"))

    def test_other_errors_are_neither(self):
        error = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        assert not is_conflict(error)
        assert not is_timeout(error)


class TestTransactionRunner:
    async def test_commits_work(self, session_factory):
        runner = TransactionRunner(session_factory)

        async def work(session):
            session.add(_account("u1"))
            return "done"

        assert await runner.run("create", work) == "done"
        async with session_factory() as session:
            assert (await session.get(Account, "u1")) is not None

    async def test_rolls_back_on_error(self, session_factory):
        runner = TransactionRunner(session_factory)

        async def work(session):
            session.add(_account("u1"))
            await session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await runner.run("create", work)
        async with session_factory() as session:
            assert (await session.get(Account, "u1")) is None

    async def test_timeout_leaves_no_partial_state(self, session_factory):
        runner = TransactionRunner(session_factory, timeout=0.05)

        async def work(session):
            session.add(_account("slow"))
            await session.flush()
            await asyncio.sleep(1)

        with pytest.raises(StorageTimeout) as exc_info:
            await runner.run("slow", work, user_id="slow")

        assert exc_info.value.retryable
        assert exc_info.value.user_id == "slow"
        async with session_factory() as session:
            rows = (await session.execute(select(Account))).scalars().all()
        assert rows == []

    async def test_statement_timeout_maps_to_storage_timeout(self, session_factory):
        runner = TransactionRunner(session_factory)

        async def work(session):
            raise _pg_error("57014")

        with pytest.raises(StorageTimeout):
            await runner.run("cancelled", work)

    async def test_conflicts_are_retried(self, session_factory):
        runner = TransactionRunner(session_factory, conflict_retries=3, backoff=0)
        attempts = []

        async def work(session):
            attempts.append(1)
            if len(attempts) < 3:
                raise _locked()
            return len(attempts)

        assert await runner.run("retry", work) == 3

    async def test_conflict_surfaces_after_retries(self, session_factory):
        runner = TransactionRunner(session_factory, conflict_retries=2, backoff=0)
        attempts = []

        async def work(session):
            attempts.append(1)
            raise _locked()

        with pytest.raises(StorageConflict) as exc_info:
            await runner.run("retry", work, user_id="u1")

        assert len(attempts) == 3
        assert exc_info.value.retryable

    async def test_non_transient_errors_propagate(self, session_factory):
        runner = TransactionRunner(session_factory, backoff=0)
        attempts = []

        async def work(session):
            attempts.append(1)
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(IntegrityError):
            await runner.run("insert", work)
        assert len(attempts) == 1

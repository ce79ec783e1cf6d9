"""
Usage ledger.

The only writer of accounts, ledger entries and idempotency records. Each
public operation runs as one transaction through :class:`TransactionRunner`;
nothing is cached between calls, every decision reads the account inside
the transaction that acts on it.

Mutations on one user are linearized by the account row lock taken by the
first statement of the transaction (see ``AccountRepository``). Mutations on
different users touch different rows and do not wait for each other on
Postgres.

``check_access`` followed by ``record_usage`` is not a reservation: two
requests racing past ``check_access`` with one unit of trial left both get
recorded, and the trial counter may end above its limit by the size of the
concurrent calls. The next ``check_access`` reports the exhaustion.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mentor_ledger.core.config import Settings
from mentor_ledger.core.database.base import as_utc, utc_now
from mentor_ledger.core.database.entities import Account, IdempotencyRecord, LedgerEntry
from mentor_ledger.core.database.repositories import BillingRepositories
from mentor_ledger.core.logging_config import get_logger
from mentor_ledger.core.models.domain import (
    AccessResult,
    AccountStatus,
    CreditResult,
    LedgerTotals,
    PurchaseResult,
    ReconciliationReport,
    SubscriptionResult,
    UsageRecorded,
    UsageSummary,
)
from mentor_ledger.core.monitoring import log_usage_event

from .errors import InvalidAmount, UnknownAccount
from .rates import RateTable, default_rate_table
from .transactions import TransactionRunner

logger = get_logger(__name__)

DEFAULT_TRIAL_UNITS_LIMIT = 100_000

Clock = Callable[[], datetime]


class _AlreadyApplied(Exception):
    """Raised inside a transaction to roll it back after losing the idempotency race."""

    def __init__(self, external_reference: str) -> None:
        super().__init__(external_reference)
        self.external_reference = external_reference


def _new_entry_id() -> str:
    return uuid4().hex


def _require(condition: bool, field: str, value: object, requirement: str) -> None:
    if not condition:
        raise InvalidAmount(field, value, requirement)


def _require_user_id(user_id: str) -> None:
    _require(isinstance(user_id, str) and bool(user_id.strip()), "user_id", user_id, "a non-empty string")


class UsageLedger:
    """Meters usage, applies purchases and decides access for billing accounts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        rates: Optional[RateTable] = None,
        trial_units_limit: int = DEFAULT_TRIAL_UNITS_LIMIT,
        trial_period_days: Optional[int] = None,
        timeout: float = 5.0,
        conflict_retries: int = 3,
        retry_backoff: float = 0.05,
        clock: Clock = utc_now,
    ) -> None:
        """
        Args:
            session_factory: Factory for sessions on the billing database
            rates: Rate table; defaults to the built-in list prices
            trial_units_limit: Limit stamped on new trial accounts
            trial_period_days: When set, trials also end this many days after opening
            timeout: Time budget in seconds for each transaction
            conflict_retries: Retries after a lock conflict
            retry_backoff: First retry delay in seconds, doubled per retry
            clock: Source of the current time (UTC-aware)
        """
        self.rates = rates or default_rate_table()
        self.trial_units_limit = trial_units_limit
        self.trial_period_days = trial_period_days
        self._clock = clock
        self._runner = TransactionRunner(
            session_factory=session_factory,
            timeout=timeout,
            conflict_retries=conflict_retries,
            backoff=retry_backoff,
        )

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        *,
        rates: Optional[RateTable] = None,
        clock: Clock = utc_now,
    ) -> "UsageLedger":
        ledger_config = settings.ledger
        return cls(
            session_factory,
            rates=rates,
            trial_units_limit=ledger_config.trial_units_limit,
            trial_period_days=ledger_config.trial_period_days,
            timeout=ledger_config.statement_timeout_seconds,
            conflict_retries=ledger_config.conflict_retries,
            retry_backoff=ledger_config.retry_backoff_seconds,
            clock=clock,
        )

    def _now(self) -> datetime:
        return as_utc(self._clock())

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def open_account(self, user_id: str, trial_units_limit: Optional[int] = None) -> Account:
        """Create the trial account for a newly registered user.

        Opening an account that already exists returns it unchanged.
        """
        _require_user_id(user_id)
        limit = self.trial_units_limit if trial_units_limit is None else trial_units_limit
        _require(limit >= 0, "trial_units_limit", limit, ">= 0")

        async def work(session: AsyncSession) -> Account:
            repos = BillingRepositories.for_session(session)
            existing = await repos.accounts.get(user_id)
            if existing is not None:
                return existing
            now = self._now()
            account = Account(
                user_id=user_id,
                status=AccountStatus.trial.value,
                trial_units_used=0,
                trial_units_limit=limit,
                lifetime_units_purchased=0,
                paid_until=None,
                created_at=now,
                updated_at=now,
            )
            await repos.accounts.add(account)
            logger.info(f"Opened trial account user_id={user_id} trial_units_limit={limit}")
            return account

        try:
            return await self._runner.run("open_account", work, user_id=user_id)
        except IntegrityError:
            # A concurrent registration created the row first.
            return await self.get_account(user_id)

    async def get_account(self, user_id: str) -> Account:
        async def work(session: AsyncSession) -> Optional[Account]:
            return await BillingRepositories.for_session(session).accounts.get(user_id)

        account = await self._runner.run("get_account", work, user_id=user_id)
        if account is None:
            raise UnknownAccount(user_id)
        return account

    async def delete_account(self, user_id: str) -> bool:
        """Remove an account with its ledger entries and idempotency records.

        Only for the deletion of the user itself.

        Returns:
            False when there was no account
        """

        async def work(session: AsyncSession) -> bool:
            repos = BillingRepositories.for_session(session)
            entries = await repos.entries.remove_for_user(user_id)
            records = await repos.idempotency.remove_for_user(user_id)
            removed = await repos.accounts.remove(user_id)
            if removed:
                logger.info(f"Deleted account user_id={user_id} entries={entries} idempotency_records={records}")
            return removed

        return await self._runner.run("delete_account", work, user_id=user_id)

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def record_usage(
        self,
        user_id: str,
        provider: str,
        model: str,
        input_units: int,
        output_units: int,
        description: Optional[str] = None,
    ) -> UsageRecorded:
        """Append the debit for one completed model call.

        Usage is always recorded, also past the trial limit; quota is
        enforced by the next ``check_access``.

        Raises:
            InvalidAmount: negative unit counts
            UnknownRate: provider/model not in the rate table
            UnknownAccount: no account for ``user_id``
        """
        cost_cents = self.rates.cost(provider, model, input_units, output_units)
        total_units = input_units + output_units
        entry_id = _new_entry_id()

        async def work(session: AsyncSession) -> UsageRecorded:
            repos = BillingRepositories.for_session(session)
            now = self._now()
            status = await repos.accounts.charge_usage(user_id, total_units, now)
            if status is None:
                raise UnknownAccount(user_id)
            charged_to_trial = status == AccountStatus.trial.value
            await repos.entries.append(
                LedgerEntry(
                    entry_id=entry_id,
                    user_id=user_id,
                    amount=-total_units,
                    cost_cents=cost_cents,
                    provider=provider,
                    model=model,
                    input_units=input_units,
                    output_units=output_units,
                    charged_to_trial=charged_to_trial,
                    description=description or f"{provider}/{model}",
                    created_at=now,
                )
            )
            return UsageRecorded(
                entry_id=entry_id,
                user_id=user_id,
                total_units=total_units,
                cost_cents=cost_cents,
                charged_to_trial=charged_to_trial,
            )

        recorded = await self._runner.run("record_usage", work, user_id=user_id)
        logger.debug(
            f"Recorded usage user_id={user_id} {provider}/{model} units={total_units} cost_cents={cost_cents}"
        )
        log_usage_event(user_id, provider, model, total_units, cost_cents)
        return recorded

    async def check_access(self, user_id: str) -> AccessResult:
        """Decide whether the user may start one billable operation now."""

        async def work(session: AsyncSession) -> Optional[Account]:
            return await BillingRepositories.for_session(session).accounts.get(user_id)

        account = await self._runner.run("check_access", work, user_id=user_id)
        return self._decide(account, self._now())

    def _decide(self, account: Optional[Account], now: datetime) -> AccessResult:
        if account is None:
            return AccessResult.unknown_account
        status = AccountStatus(account.status)
        if status is AccountStatus.trial:
            if account.trial_units_used >= account.trial_units_limit:
                return AccessResult.trial_exhausted
            if self.trial_period_days is not None:
                if as_utc(account.created_at) + timedelta(days=self.trial_period_days) <= now:
                    return AccessResult.trial_expired
            return AccessResult.allowed
        if status is AccountStatus.active and account.paid_until is not None and as_utc(account.paid_until) > now:
            return AccessResult.allowed
        return AccessResult.subscription_expired

    async def trial_remaining(self, user_id: str) -> int:
        """Trial units left; zero once the account has left the trial."""
        account = await self.get_account(user_id)
        if account.status != AccountStatus.trial.value:
            return 0
        return max(0, account.trial_units_limit - account.trial_units_used)

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    async def _credit(
        self,
        repos: BillingRepositories,
        user_id: str,
        units: int,
        price_cents: int,
        external_reference: str,
        description: Optional[str],
        now: datetime,
    ) -> CreditResult:
        if not await repos.accounts.lock(user_id, now):
            raise UnknownAccount(user_id)
        existing = await repos.idempotency.get(external_reference)
        if existing is not None:
            if existing.user_id != user_id:
                logger.warning(
                    f"Payment reference {external_reference} already applied to user_id={existing.user_id}, "
                    f"not crediting user_id={user_id}"
                )
            return CreditResult(applied=False, external_reference=external_reference, entry_id=existing.entry_id)

        entry_id = _new_entry_id()
        try:
            await repos.idempotency.add(
                IdempotencyRecord(
                    external_reference=external_reference,
                    user_id=user_id,
                    entry_id=entry_id,
                    applied_at=now,
                )
            )
        except IntegrityError as exc:
            raise _AlreadyApplied(external_reference) from exc
        await repos.entries.append(
            LedgerEntry(
                entry_id=entry_id,
                user_id=user_id,
                amount=units,
                price_cents=price_cents,
                external_reference=external_reference,
                description=description or f"Purchase of {units} units",
                created_at=now,
            )
        )
        await repos.accounts.add_purchased(user_id, units, now)
        return CreditResult(applied=True, external_reference=external_reference, entry_id=entry_id)

    async def _extend(self, repos: BillingRepositories, user_id: str, days: int, now: datetime) -> Account:
        account = await repos.accounts.get(user_id, fresh=True)
        if account is None:
            raise UnknownAccount(user_id)
        current = as_utc(account.paid_until) if account.paid_until is not None else None
        start = current if current is not None and current > now else now
        account.paid_until = start + timedelta(days=days)
        account.status = AccountStatus.active.value
        account.updated_at = now
        await repos.accounts.session.flush()
        return account

    async def _applied_result(self, external_reference: str) -> CreditResult:
        async def work(session: AsyncSession) -> Optional[IdempotencyRecord]:
            return await BillingRepositories.for_session(session).idempotency.get(external_reference)

        record = await self._runner.run("idempotency_lookup", work)
        return CreditResult(
            applied=False,
            external_reference=external_reference,
            entry_id=record.entry_id if record is not None else None,
        )

    def _check_purchase(self, user_id: str, units: int, price_cents: int, external_reference: str) -> None:
        _require_user_id(user_id)
        _require(units > 0, "units", units, "> 0")
        _require(price_cents >= 0, "price_cents", price_cents, ">= 0")
        _require(bool(external_reference), "external_reference", external_reference, "a non-empty string")

    async def add_tokens(
        self,
        user_id: str,
        units: int,
        price_cents: int,
        external_reference: str,
        description: Optional[str] = None,
    ) -> CreditResult:
        """Apply a purchase credit exactly once per ``external_reference``.

        A repeated reference, whether seen by the existence check or by the
        uniqueness violation of a concurrent insert, returns ``applied=False``
        without changing anything.
        """
        self._check_purchase(user_id, units, price_cents, external_reference)

        async def work(session: AsyncSession) -> CreditResult:
            repos = BillingRepositories.for_session(session)
            return await self._credit(repos, user_id, units, price_cents, external_reference, description, self._now())

        try:
            result = await self._runner.run("add_tokens", work, user_id=user_id)
        except _AlreadyApplied:
            result = await self._applied_result(external_reference)

        if result.applied:
            logger.info(f"Credited {units} units to user_id={user_id} reference={external_reference}")
        else:
            logger.info(f"Skipped duplicate credit reference={external_reference} user_id={user_id}")
        return result

    async def activate_subscription(self, user_id: str, days: int) -> SubscriptionResult:
        """Activate or extend paid access by ``days``.

        An unexpired subscription is extended from its current end, a lapsed
        one restarts from now.
        """
        _require(days > 0, "days", days, "> 0")

        async def work(session: AsyncSession) -> SubscriptionResult:
            repos = BillingRepositories.for_session(session)
            now = self._now()
            if not await repos.accounts.lock(user_id, now):
                raise UnknownAccount(user_id)
            account = await self._extend(repos, user_id, days, now)
            return SubscriptionResult(user_id=user_id, status=AccountStatus.active, paid_until=account.paid_until)

        result = await self._runner.run("activate_subscription", work, user_id=user_id)
        logger.info(f"Subscription active for user_id={user_id} until {result.paid_until.isoformat()}")
        return result

    async def apply_purchase(
        self,
        user_id: str,
        units: int,
        price_cents: int,
        external_reference: str,
        days: int,
        description: Optional[str] = None,
    ) -> PurchaseResult:
        """Credit units and extend the subscription in one transaction.

        The subscription is only extended when the credit is newly applied,
        so a repeated delivery changes nothing.
        """
        self._check_purchase(user_id, units, price_cents, external_reference)
        _require(days > 0, "days", days, "> 0")

        async def work(session: AsyncSession) -> PurchaseResult:
            repos = BillingRepositories.for_session(session)
            now = self._now()
            credit = await self._credit(repos, user_id, units, price_cents, external_reference, description, now)
            if not credit.applied:
                account = await repos.accounts.get(user_id, fresh=True)
                paid_until = account.paid_until if account is not None else None
                return PurchaseResult(credit=credit, paid_until=as_utc(paid_until) if paid_until else None)
            account = await self._extend(repos, user_id, days, now)
            return PurchaseResult(credit=credit, paid_until=account.paid_until)

        try:
            result = await self._runner.run("apply_purchase", work, user_id=user_id)
        except _AlreadyApplied:
            credit = await self._applied_result(external_reference)
            account = await self.get_account(user_id)
            paid_until = as_utc(account.paid_until) if account.paid_until is not None else None
            result = PurchaseResult(credit=credit, paid_until=paid_until)

        if result.applied:
            logger.info(
                f"Applied purchase of {units} units to user_id={user_id} reference={external_reference}, "
                f"paid until {result.paid_until}"
            )
        else:
            logger.info(f"Skipped duplicate purchase reference={external_reference} user_id={user_id}")
        return result

    async def expire_lapsed(self) -> int:
        """Move active accounts past their ``paid_until`` to ``expired``."""

        async def work(session: AsyncSession) -> int:
            return await BillingRepositories.for_session(session).accounts.expire_lapsed(self._now())

        changed = await self._runner.run("expire_lapsed", work)
        if changed:
            logger.info(f"Expired {changed} lapsed subscriptions")
        return changed

    # ------------------------------------------------------------------
    # Statements and reports
    # ------------------------------------------------------------------

    async def statement(
        self, user_id: str, since: Optional[datetime] = None, limit: Optional[int] = 100
    ) -> List[LedgerEntry]:
        """Ledger entries of a user, newest first."""

        async def work(session: AsyncSession) -> List[LedgerEntry]:
            return await BillingRepositories.for_session(session).entries.list_for_user(
                user_id, since=since, limit=limit
            )

        return await self._runner.run("statement", work, user_id=user_id)

    async def usage_summary(self, user_id: str) -> UsageSummary:
        async def work(session: AsyncSession) -> UsageSummary:
            repos = BillingRepositories.for_session(session)
            if await repos.accounts.get(user_id) is None:
                raise UnknownAccount(user_id)
            used, purchased, _, cost, revenue, count = await repos.entries.sums(user_id)
            return UsageSummary(
                user_id=user_id,
                units_used=used,
                units_purchased=purchased,
                cost_cents=cost,
                revenue_cents=revenue,
                entry_count=count,
            )

        return await self._runner.run("usage_summary", work, user_id=user_id)

    async def totals(self) -> LedgerTotals:
        async def work(session: AsyncSession) -> LedgerTotals:
            used, _, _, cost, revenue, _ = await BillingRepositories.for_session(session).entries.sums()
            return LedgerTotals(units_used=used, cost_cents=cost, revenue_cents=revenue)

        return await self._runner.run("totals", work)

    async def reconcile(self, user_id: str) -> ReconciliationReport:
        """Compare the account counters with the values rebuilt from the log."""

        async def work(session: AsyncSession) -> ReconciliationReport:
            repos = BillingRepositories.for_session(session)
            account = await repos.accounts.get(user_id)
            if account is None:
                raise UnknownAccount(user_id)
            _, purchased, trial_units, _, _, _ = await repos.entries.sums(user_id)
            return ReconciliationReport(
                user_id=user_id,
                trial_units_used=account.trial_units_used,
                logged_trial_units=trial_units,
                lifetime_units_purchased=account.lifetime_units_purchased,
                logged_units_purchased=purchased,
            )

        report = await self._runner.run("reconcile", work, user_id=user_id)
        if not report.consistent:
            logger.error(f"Account projection drifted from the ledger: {report.model_dump()}")
        return report

"""
Service wiring.

``ledger_services`` is the single place where a host process turns
settings into running components: it configures logging, opens the billing
engine, enables monitoring and hands out the ledger, the payment processor
and the tenant directory. The engine is disposed when the context exits.

Usage::

    async with ledger_services() as services:
        await services.ledger.open_account(user_id)
        await services.tenants.provision(user_id)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from mentor_ledger.billing.ledger import UsageLedger
from mentor_ledger.billing.payments import PaymentProcessor
from mentor_ledger.billing.rates import RateTable
from mentor_ledger.core.config import Settings, settings
from mentor_ledger.core.database import create_all, create_engine, create_sessionmaker
from mentor_ledger.core.logging_config import get_logger, setup_logging
from mentor_ledger.core.monitoring import initialize_logfire
from mentor_ledger.tenant import TenantDirectory

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerServices:
    """Components sharing one billing engine."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    ledger: UsageLedger
    payments: PaymentProcessor
    tenants: TenantDirectory


@asynccontextmanager
async def ledger_services(
    app_settings: Optional[Settings] = None,
    *,
    rates: Optional[RateTable] = None,
    create_schema: bool = False,
    configure_logging: bool = True,
) -> AsyncIterator[LedgerServices]:
    """Build the ledger components from settings.

    Args:
        app_settings: Settings to use; defaults to the process-wide settings
        rates: Rate table override
        create_schema: Create the billing tables directly instead of relying on migrations
        configure_logging: Call ``setup_logging`` with the configured level
    """
    app_settings = app_settings or settings
    if configure_logging:
        setup_logging(app_settings.log_level)

    database = app_settings.database
    engine = create_engine(
        database.url,
        statement_timeout=app_settings.ledger.statement_timeout_seconds,
        echo=database.echo,
    )
    initialize_logfire(engine)
    try:
        if create_schema:
            await create_all(engine)
        session_factory = create_sessionmaker(engine)
        ledger = UsageLedger.from_settings(session_factory, app_settings, rates=rates)
        services = LedgerServices(
            engine=engine,
            session_factory=session_factory,
            ledger=ledger,
            payments=PaymentProcessor.from_settings(ledger, app_settings),
            tenants=TenantDirectory.from_settings(app_settings),
        )
        logger.info(f"Ledger services ready on {engine.url.render_as_string(hide_password=True)}")
        yield services
    finally:
        await engine.dispose()
        logger.info("Ledger services shut down")

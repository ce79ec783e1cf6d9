"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for tracing of ledger
operations:
- SQLAlchemy statement tracing for the billing tables
- Usage and payment events with structured attributes

Monitoring is optional; when Logfire is disabled or unconfigured every helper
degrades to debug logging and never changes a ledger outcome.
"""

import os
from typing import Any, Optional

from .logging_config import get_logger

logger = get_logger(__name__)

LOGFIRE_ENABLED = os.getenv("LOGFIRE_ENABLED", "false").lower() in ("true", "1", "yes")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_PROJECT_NAME = os.getenv("LOGFIRE_PROJECT_NAME", "mentor-ledger")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "mentor-ledger")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.0.0")

LOGFIRE_TRACE_SQLALCHEMY = os.getenv("LOGFIRE_TRACE_SQLALCHEMY", "true").lower() in ("true", "1", "yes")


def initialize_logfire(engine: Optional[Any] = None) -> bool:
    """
    Initialize Logfire for monitoring and tracing.

    Args:
        engine: Async engine to instrument. When omitted every engine created
            afterwards is instrumented.

    Returns:
        True when Logfire was configured.
    """
    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not LOGFIRE_TOKEN:
        logger.warning("Logfire is enabled but LOGFIRE_TOKEN is not set. Monitoring will not work.")
        return False

    import logfire

    logfire.configure(
        token=LOGFIRE_TOKEN,
        service_name=LOGFIRE_SERVICE_NAME,
        service_version=LOGFIRE_SERVICE_VERSION,
        environment=LOGFIRE_ENVIRONMENT,
    )

    if LOGFIRE_TRACE_SQLALCHEMY:
        try:
            if engine is not None:
                logfire.instrument_sqlalchemy(engine=getattr(engine, "sync_engine", engine))
            else:
                logfire.instrument_sqlalchemy()
            logger.info("Logfire: SQLAlchemy instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument SQLAlchemy: {e}")

    logger.info(
        f"Logfire monitoring initialized: project={LOGFIRE_PROJECT_NAME}, "
        f"environment={LOGFIRE_ENVIRONMENT}, service={LOGFIRE_SERVICE_NAME}"
    )
    return True


def log_usage_event(user_id: str, provider: str, model: str, total_units: int, cost_cents: int) -> None:
    """Emit a usage debit to Logfire."""
    if not LOGFIRE_ENABLED:
        logger.debug(f"Usage user_id={user_id} {provider}/{model} units={total_units} cost_cents={cost_cents}")
        return
    try:
        import logfire

        logfire.info(
            "Usage recorded",
            user_id=user_id,
            provider=provider,
            model=model,
            total_units=total_units,
            cost_cents=cost_cents,
        )
    except Exception:
        logger.debug(f"Could not log usage to Logfire: user_id={user_id}")


def log_payment_event(external_reference: str, status: str, outcome: str, user_id: Optional[str] = None) -> None:
    """
    Emit a processed payment notification to Logfire.

    Args:
        external_reference: Payment identifier from the processor
        status: Raw payment status
        outcome: Outcome of processing (applied, pending, rejected, ignored)
        user_id: Owning user when the order could be resolved
    """
    if not LOGFIRE_ENABLED:
        logger.debug(f"Payment reference={external_reference} status={status} outcome={outcome}")
        return
    try:
        import logfire

        logfire.info(
            "Payment notification processed",
            external_reference=external_reference,
            status=status,
            outcome=outcome,
            user_id=user_id,
        )
    except Exception:
        logger.debug(f"Could not log payment to Logfire: reference={external_reference}")

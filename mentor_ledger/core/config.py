"""
Configuration Settings.

This module defines the ledger configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class DatabaseConfig(BaseModel):
    """Billing database configuration."""

    url: str = Field(
        default="sqlite+aiosqlite:///./mentor_ledger.db",
        alias="DATABASE_URL",
        description="Async database URL for the billing tables",
    )
    echo: bool = Field(default=False, alias="DATABASE_ECHO", description="Echo SQL statements to the log")

    model_config = {"populate_by_name": True}


class LedgerConfig(BaseModel):
    """Usage ledger behaviour configuration."""

    trial_units_limit: int = Field(
        default=100_000,
        alias="LEDGER_TRIAL_UNITS_LIMIT",
        description="Units granted to every new trial account",
        ge=0,
    )
    trial_period_days: Optional[int] = Field(
        default=None,
        alias="LEDGER_TRIAL_PERIOD_DAYS",
        description="Optional trial lifetime in days; unset means the trial only ends by quota",
        gt=0,
    )
    statement_timeout_seconds: float = Field(
        default=5.0,
        alias="LEDGER_STATEMENT_TIMEOUT_SECONDS",
        description="Upper bound for a single ledger transaction",
        gt=0,
    )
    conflict_retries: int = Field(
        default=3,
        alias="LEDGER_CONFLICT_RETRIES",
        description="How many times a transaction is retried after a lock conflict",
        ge=0,
    )
    retry_backoff_seconds: float = Field(
        default=0.05,
        alias="LEDGER_RETRY_BACKOFF_SECONDS",
        description="Initial backoff between conflict retries, doubled per attempt",
        ge=0,
    )

    model_config = {"populate_by_name": True}


class PaymentsConfig(BaseModel):
    """Cryptomus payment notification configuration."""

    api_key: Optional[str] = Field(
        default=None,
        alias="CRYPTOMUS_API_KEY",
        description="Shared secret used to sign payment notifications",
    )
    merchant_id: Optional[str] = Field(
        default=None, alias="CRYPTOMUS_MERCHANT_ID", description="Cryptomus merchant identifier"
    )
    subscription_days: int = Field(
        default=30,
        alias="PAYMENT_SUBSCRIPTION_DAYS",
        description="Days of access granted by a confirmed purchase",
        gt=0,
    )

    model_config = {"populate_by_name": True}


class TenantConfig(BaseModel):
    """Tenant data store configuration."""

    base_path: str = Field(
        default="./data", alias="TENANT_BASE_PATH", description="Root directory holding per-user tenant stores"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Ledger settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="MENTOR_LEDGER_LOG_LEVEL",
    )

    # =====================================================================
    # Database Configuration
    # =====================================================================
    database_url: str = Field(default="sqlite+aiosqlite:///./mentor_ledger.db", alias="DATABASE_URL")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # =====================================================================
    # Ledger Configuration
    # =====================================================================
    ledger_trial_units_limit: int = Field(default=100_000, alias="LEDGER_TRIAL_UNITS_LIMIT")
    ledger_trial_period_days: Optional[int] = Field(default=None, alias="LEDGER_TRIAL_PERIOD_DAYS")
    ledger_statement_timeout_seconds: float = Field(default=5.0, alias="LEDGER_STATEMENT_TIMEOUT_SECONDS")
    ledger_conflict_retries: int = Field(default=3, alias="LEDGER_CONFLICT_RETRIES")
    ledger_retry_backoff_seconds: float = Field(default=0.05, alias="LEDGER_RETRY_BACKOFF_SECONDS")

    # =====================================================================
    # Payments Configuration
    # =====================================================================
    cryptomus_api_key: Optional[str] = Field(default=None, alias="CRYPTOMUS_API_KEY")
    cryptomus_merchant_id: Optional[str] = Field(default=None, alias="CRYPTOMUS_MERCHANT_ID")
    payment_subscription_days: int = Field(default=30, alias="PAYMENT_SUBSCRIPTION_DAYS")

    # =====================================================================
    # Tenant Configuration
    # =====================================================================
    tenant_base_path: str = Field(default="./data", alias="TENANT_BASE_PATH")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def database(self) -> DatabaseConfig:
        """Get database configuration from environment variables."""
        return DatabaseConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def ledger(self) -> LedgerConfig:
        """Get ledger configuration from environment variables."""
        return LedgerConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def payments(self) -> PaymentsConfig:
        """Get payment notification configuration from environment variables."""
        return PaymentsConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def tenant(self) -> TenantConfig:
        """Get tenant store configuration from environment variables."""
        return TenantConfig.model_validate(self.model_dump(by_alias=True))


settings = Settings()

"""Usage metering, billing ledger and tenant stores for the AI mentor service."""

__version__ = "0.1.0"

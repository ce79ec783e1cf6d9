"""
Core utilities and configuration for the mentor ledger.

This package provides core functionality including logging configuration,
settings, monitoring and database setup.
"""

from mentor_ledger.core.logging_config import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]

"""
Unit tests for the Logfire monitoring module.

This test suite covers:
- Environment variable parsing
- Initialization with and without credentials
- Event helpers and graceful degradation
"""

import importlib
import os
import sys
from unittest.mock import MagicMock, Mock, patch

import pytest

import mentor_ledger.core.monitoring as monitoring


@pytest.fixture
def fake_logfire():
    module = MagicMock()
    with patch.dict(sys.modules, {"logfire": module}):
        yield module


@pytest.fixture(autouse=True)
def _restore_module():
    yield
    importlib.reload(monitoring)


class TestLogfireEnvironmentConfiguration:
    """Test environment variable configuration for Logfire."""

    def test_logfire_disabled_by_default(self):
        with patch.dict(os.environ, {}, clear=True):
            importlib.reload(monitoring)

            assert monitoring.LOGFIRE_ENABLED is False
            assert monitoring.LOGFIRE_SERVICE_NAME == "mentor-ledger"

    @pytest.mark.parametrize("value", ["true", "1", "yes", "TRUE"])
    def test_logfire_enabled_values(self, value):
        with patch.dict(os.environ, {"LOGFIRE_ENABLED": value}):
            importlib.reload(monitoring)

            assert monitoring.LOGFIRE_ENABLED is True

    def test_sqlalchemy_tracing_flag(self):
        with patch.dict(os.environ, {"LOGFIRE_TRACE_SQLALCHEMY": "false"}):
            importlib.reload(monitoring)

            assert monitoring.LOGFIRE_TRACE_SQLALCHEMY is False


class TestInitializeLogfire:
    """Test initialize_logfire."""

    def test_disabled_does_nothing(self, fake_logfire):
        with patch.object(monitoring, "LOGFIRE_ENABLED", False):
            assert monitoring.initialize_logfire() is False

        fake_logfire.configure.assert_not_called()

    def test_enabled_without_token(self, fake_logfire):
        with patch.object(monitoring, "LOGFIRE_ENABLED", True), patch.object(monitoring, "LOGFIRE_TOKEN", ""):
            assert monitoring.initialize_logfire() is False

        fake_logfire.configure.assert_not_called()

    def test_configures_and_instruments_engine(self, fake_logfire):
        engine = Mock()
        with patch.object(monitoring, "LOGFIRE_ENABLED", True), patch.object(monitoring, "LOGFIRE_TOKEN", "tok"):
            assert monitoring.initialize_logfire(engine) is True

        fake_logfire.configure.assert_called_once()
        assert fake_logfire.configure.call_args.kwargs["token"] == "tok"
        fake_logfire.instrument_sqlalchemy.assert_called_once_with(engine=engine.sync_engine)

    def test_instrumentation_failure_is_tolerated(self, fake_logfire):
        fake_logfire.instrument_sqlalchemy.side_effect = RuntimeError("no otel")
        with patch.object(monitoring, "LOGFIRE_ENABLED", True), patch.object(monitoring, "LOGFIRE_TOKEN", "tok"):
            assert monitoring.initialize_logfire() is True


class TestEventHelpers:
    @pytest.fixture(autouse=True)
    def _enabled(self):
        with patch.object(monitoring, "LOGFIRE_ENABLED", True):
            yield

    def test_log_usage_event(self, fake_logfire):
        monitoring.log_usage_event("u1", "openai", "gpt-4o", 100, 2)

        fake_logfire.info.assert_called_once()
        assert fake_logfire.info.call_args.kwargs["total_units"] == 100

    def test_log_payment_event(self, fake_logfire):
        monitoring.log_payment_event("pay-1", "paid", "applied", "u1")

        assert fake_logfire.info.call_args.kwargs["outcome"] == "applied"

    def test_helpers_never_raise(self, fake_logfire):
        fake_logfire.info.side_effect = RuntimeError("exporter down")

        monitoring.log_usage_event("u1", "openai", "gpt-4o", 1, 1)
        monitoring.log_payment_event("pay-1", "paid", "applied")


class TestEventHelpersDisabled:
    def test_disabled_helpers_skip_logfire(self, fake_logfire):
        with patch.object(monitoring, "LOGFIRE_ENABLED", False):
            monitoring.log_usage_event("u1", "openai", "gpt-4o", 1, 1)
            monitoring.log_payment_event("pay-1", "paid", "applied")

        fake_logfire.info.assert_not_called()

"""Fixtures for Alembic migration tests."""

from pathlib import Path

import pytest
from alembic.config import Config

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent


@pytest.fixture
def sqlite_path(tmp_path) -> Path:
    return tmp_path / "migrated.db"


@pytest.fixture
def alembic_config(sqlite_path) -> Config:
    """Alembic config pointed at a throwaway SQLite file.

    ``DATABASE_URL`` from the environment is ignored and the ini logging
    setup is skipped so the run does not reconfigure pytest's log capture.
    """
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{sqlite_path}")
    config.attributes["ignore_env_url"] = True
    config.attributes["skip_logging_config"] = True
    return config

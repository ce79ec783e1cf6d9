"""
Alembic Environment Configuration
==================================

Runs migrations for the billing tables. The URL comes from DATABASE_URL
when set, otherwise from ``sqlalchemy.url``; Postgres URLs are rewritten to
the asyncpg driver like the application engine.
"""

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from mentor_ledger.core.database import Base, normalize_url
from mentor_ledger.core.database import entities  # noqa: F401  registers billing tables

config = context.config

database_url = os.environ.get("DATABASE_URL")
if database_url and not config.attributes.get("ignore_env_url"):
    config.set_main_option("sqlalchemy.url", database_url)
config.set_main_option("sqlalchemy.url", normalize_url(config.get_main_option("sqlalchemy.url")).replace("%", "%%"))

if config.config_file_name is not None and not config.attributes.get("skip_logging_config"):
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (emit SQL to stdout)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode over an async engine."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

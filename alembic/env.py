"""Alembic environment for the agent registry.

Runs against the same async URL the app uses (aiosqlite locally, asyncpg in
production). SQLite gets batch mode so constraint changes can be migrated.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from agentregistry.config import settings

# All models must be imported so Base.metadata is complete for autogenerate.
from agentregistry.models import *  # noqa: F401, F403
from agentregistry.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# agentregistry.config.settings is the single source of truth for the URL
config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = Base.metadata
_render_as_batch = settings.database_url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit SQL for the configured URL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=_render_as_batch,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=_render_as_batch,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
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
    asyncio.run(run_async_migrations())

"""Migration runner for the pagecraft schema.

The target URL comes from pagecraft settings (``PAGECRAFT_DB__URL`` or
app.yaml). ``alembic -x url=...`` overrides it for a single run.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from pagecraft.config import get_settings
from pagecraft.db import models  # noqa: F401
from pagecraft.db.base import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def database_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("url")
    return override or get_settings().db.url or config.get_main_option("sqlalchemy.url", "")


def _configure(**options) -> None:
    # SQLite cannot ALTER constraints in place; batch mode copies the table
    context.configure(target_metadata=Base.metadata, render_as_batch=True, **options)
    with context.begin_transaction():
        context.run_migrations()


def _migrate_connection(connection: Connection) -> None:
    _configure(connection=connection)


async def _migrate_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = database_url()
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    async with engine.connect() as connection:
        await connection.run_sync(_migrate_connection)
    await engine.dispose()


if context.is_offline_mode():
    _configure(url=database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    asyncio.run(_migrate_online())

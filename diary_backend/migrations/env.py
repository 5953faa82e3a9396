"""Alembic environment for the diary entry tables.

The database URL comes from the settings profile unless ``-x url=...`` is
passed on the alembic command line. Autogenerate compares against the same
table definitions the entry store uses at runtime.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import MetaData, engine_from_config, pool

from diary_backend.app.config import load_settings
from diary_backend.app.domain.entrystore.schema import define_entry_tables

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = MetaData()
define_entry_tables(target_metadata)


def _database_url() -> str:
    overrides = context.get_x_argument(as_dictionary=True)
    return overrides.get("url") or load_settings().database_url


def run_migrations_offline() -> None:
    """Emit SQL for the pending revisions without connecting."""

    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _database_url()
    connectable = engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

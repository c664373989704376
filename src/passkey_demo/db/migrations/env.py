"""Alembic environment for passkey-demo (sync drivers only)."""

from __future__ import annotations

from alembic import context
from sqlalchemy import pool

import passkey_demo.passkeys.models  # noqa: F401
from passkey_demo.db.base import Base
from passkey_demo.db.migrations.runtime import create_sync_engine, normalize_db_url_for_sync

config = context.config
target_metadata = Base.metadata


def _db_url() -> str:
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("sqlalchemy.url is not configured for migrations")
    return normalize_db_url_for_sync(url)


def run_migrations_offline() -> None:
    context.configure(
        url=_db_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_sync_engine(_db_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

"""Packaged Alembic migrations: locating them, reading schema state, upgrading.

Alembic's env.py runs on sync drivers only, so every entry point here
normalizes the configured URL first (``sqlite+aiosqlite`` becomes ``sqlite``
and ``postgresql+asyncpg`` becomes ``postgresql+psycopg``).
"""

from __future__ import annotations

import asyncio
import importlib.resources
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from alembic import command as alembic_command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine, create_engine, make_url

_SYNC_DRIVERS = {
    "sqlite+aiosqlite": "sqlite",
    "postgresql+asyncpg": "postgresql+psycopg",
    "postgresql": "postgresql+psycopg",
    "postgres": "postgresql+psycopg",
}

# Query options asyncpg understands and psycopg rejects.
_ASYNCPG_ONLY_QUERY_KEYS = ("prepared_statement_cache_size", "prepared_statement_name_func")


class PackagedMigrationsError(RuntimeError):
    """Raised when packaged migrations cannot be found."""


@dataclass(frozen=True)
class SchemaStatus:
    """Where the database schema stands relative to the packaged migrations.

    ``state`` is one of ``fresh`` (no passkey tables, no revision),
    ``at_head``, ``behind`` or ``stamp_required`` (tables created by
    ``create_all`` but never stamped).
    """

    state: str
    current_revisions: tuple[str, ...]
    head_revisions: tuple[str, ...]
    warning: str | None


def normalize_db_url_for_sync(url: str) -> str:
    parsed = make_url(url)
    driver = _SYNC_DRIVERS.get(parsed.drivername, parsed.drivername)
    query = dict(parsed.query)
    if driver == "postgresql+psycopg":
        for key in _ASYNCPG_ONLY_QUERY_KEYS:
            query.pop(key, None)
    # Rendered with the password: Alembic connects with this string directly.
    return parsed.set(drivername=driver, query=query).render_as_string(hide_password=False)


def create_sync_engine(url: str, **kwargs: Any) -> Engine:
    if make_url(url).get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, **kwargs)


@contextmanager
def packaged_migrations_dir() -> Iterator[Path]:
    resources = importlib.resources.files("passkey_demo.db.migrations")
    with importlib.resources.as_file(resources) as root:
        if not (root / "env.py").is_file() or not (root / "versions").is_dir():
            raise PackagedMigrationsError(
                "packaged migrations not found; installation may be broken"
            )
        yield root


def alembic_config(db_url: str, migrations_dir: Path) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(migrations_dir))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def _passkey_tables() -> set[str]:
    import passkey_demo.passkeys.models  # noqa: F401
    from passkey_demo.db.base import Base

    return set(Base.metadata.tables)


def _classify(
    current: tuple[str, ...], heads: tuple[str, ...], has_passkey_tables: bool
) -> SchemaStatus:
    if current and set(current) == set(heads):
        return SchemaStatus("at_head", current, heads, None)
    if not current:
        if not has_passkey_tables:
            return SchemaStatus("fresh", current, heads, None)
        return SchemaStatus(
            "stamp_required",
            current,
            heads,
            "database appears initialized without alembic versioning; "
            "run: passkey-demo db migrate stamp --yes",
        )
    return SchemaStatus(
        "behind",
        current,
        heads,
        "database schema revision is behind code migrations; "
        f"current={list(current)} head={list(heads)}. "
        "run: passkey-demo db migrate upgrade --yes",
    )


def get_schema_status(db_url: str) -> SchemaStatus:
    sync_url = normalize_db_url_for_sync(db_url)
    with packaged_migrations_dir() as migrations_dir:
        script = ScriptDirectory.from_config(alembic_config(sync_url, migrations_dir))
        heads = tuple(sorted(script.get_heads()))

    engine = create_sync_engine(sync_url)
    try:
        with engine.connect() as conn:
            tables = set(inspect(conn).get_table_names())
            current: tuple[str, ...] = ()
            if "alembic_version" in tables:
                current = tuple(sorted(MigrationContext.configure(conn).get_current_heads()))
    finally:
        engine.dispose()

    return _classify(current, heads, bool(_passkey_tables() & tables))


def run_upgrade_to_head(db_url: str) -> SchemaStatus:
    """Bring the schema to head and return the resulting status.

    A fresh database gets ``create_all`` plus a stamp at head. An unstamped
    database with existing tables is left alone and reported as
    ``stamp_required``.
    """
    sync_url = normalize_db_url_for_sync(db_url)
    status = get_schema_status(sync_url)
    if status.state in ("stamp_required", "at_head"):
        return status

    with packaged_migrations_dir() as migrations_dir:
        cfg = alembic_config(sync_url, migrations_dir)
        if status.state == "fresh":
            from passkey_demo.db.base import Base

            _passkey_tables()
            engine = create_sync_engine(sync_url)
            try:
                Base.metadata.create_all(engine)
            finally:
                engine.dispose()
            alembic_command.stamp(cfg, "head")
        else:
            alembic_command.upgrade(cfg, "head")

    return get_schema_status(sync_url)


def stamp_head(db_url: str) -> SchemaStatus:
    """Mark an existing create_all schema as being at head."""
    sync_url = normalize_db_url_for_sync(db_url)
    with packaged_migrations_dir() as migrations_dir:
        alembic_command.stamp(alembic_config(sync_url, migrations_dir), "head")
    return get_schema_status(sync_url)


async def run_upgrade_to_head_async(db_url: str) -> SchemaStatus:
    """Run the sync upgrade in a worker thread when called from async code."""
    return await asyncio.to_thread(run_upgrade_to_head, db_url)

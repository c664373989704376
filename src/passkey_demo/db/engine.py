"""Async engine factory."""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from passkey_demo.config import Settings

_ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "postgresql+psycopg": "postgresql+asyncpg",
}


def sync_to_async_url(url: str) -> str:
    """Swap a sync driver for its async counterpart; async URLs pass through."""
    parsed = make_url(url)
    driver = _ASYNC_DRIVERS.get(parsed.drivername)
    if driver is None:
        return url
    return parsed.set(drivername=driver).render_as_string(hide_password=False)


def create_async_engine_from_settings(settings: Settings | None = None) -> AsyncEngine:
    """Build the async engine.

    Lock waits (SQLite busy timeout) and pool checkout (Postgres) are bounded
    by ``storage_timeout_seconds`` so contention shows up as a storage error.
    """
    if settings is None:
        settings = Settings()
    url = sync_to_async_url(settings.database_url)
    backend = make_url(url).get_backend_name()

    kwargs: dict[str, Any] = {}
    if backend == "sqlite":
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.storage_timeout_seconds,
        }
    elif backend == "postgresql":
        kwargs.update(
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_timeout=settings.storage_timeout_seconds,
        )
    return create_async_engine(url, **kwargs)

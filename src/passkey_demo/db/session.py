"""Storage handle and transaction boundary."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from passkey_demo.config import Settings
from passkey_demo.db.base import Base
from passkey_demo.db.engine import create_async_engine_from_settings
from passkey_demo.errors import StorageUnavailable

logger = logging.getLogger(__name__)


class Database:
    """Explicitly constructed storage handle shared by the stores.

    Owns the async engine and session factory. Every unit of work goes
    through :meth:`transaction`, which commits on success, rolls back on any
    error and reports connection loss, lock conflicts and timeouts as
    :class:`~passkey_demo.errors.StorageUnavailable`.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self.engine = engine
        self.session_factory = async_sessionmaker(engine, expire_on_commit=False)
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(
            create_async_engine_from_settings(settings),
            timeout_seconds=settings.storage_timeout_seconds,
        )

    async def create_all(self) -> None:
        # Import models so they register with Base.metadata before create_all.
        import passkey_demo.passkeys.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def transaction(self, session: AsyncSession | None = None) -> AsyncIterator[AsyncSession]:
        """Yield a session inside a transaction.

        When *session* is given the caller already owns a transaction, so it is
        yielded as-is and commit/rollback stay with the caller.
        """
        if session is not None:
            yield session
            return

        try:
            async with asyncio.timeout(self.timeout_seconds):
                async with self.session_factory() as db:
                    try:
                        yield db
                        await db.commit()
                    except Exception:
                        await db.rollback()
                        raise
        except TimeoutError as exc:
            logger.error("storage operation timed out after %ss", self.timeout_seconds)
            raise StorageUnavailable("Storage operation timed out") from exc
        except (
            OperationalError,
            InterfaceError,
            DisconnectionError,
            PoolTimeoutError,
            OSError,
        ) as exc:
            logger.error("storage unavailable: %s", exc.__class__.__name__)
            raise StorageUnavailable() from exc

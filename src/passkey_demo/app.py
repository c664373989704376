"""Application factory."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from pydantic import BaseModel, Field

from passkey_demo.config import Settings
from passkey_demo.db.migrations.runtime import (
    PackagedMigrationsError,
    get_schema_status,
    run_upgrade_to_head,
)
from passkey_demo.db.session import Database
from passkey_demo.obs.settings import ObservabilitySettings
from passkey_demo.obs.setup import init_observability
from passkey_demo.passkeys.challenges import ChallengeStore
from passkey_demo.passkeys.credentials import CredentialStore
from passkey_demo.passkeys.router import router as passkey_router
from passkey_demo.passkeys.service import CeremonyService
from passkey_demo.passkeys.users import DatabaseUserProvisioner, UserProvisioner
from passkey_demo.passkeys.webauthn import CeremonyVerifier, WebAuthnVerifier
from passkey_demo.version import __version__ as PASSKEY_DEMO_VERSION

logger = logging.getLogger(__name__)


def build_ceremony_service(
    settings: Settings,
    db: Database,
    *,
    verifier: CeremonyVerifier | None = None,
    users: UserProvisioner | None = None,
) -> CeremonyService:
    """Wire the stores and collaborators around one storage handle."""
    return CeremonyService(
        settings=settings,
        db=db,
        challenges=ChallengeStore(db, ttl_seconds=settings.challenge_ttl_seconds),
        credentials=CredentialStore(db),
        users=users if users is not None else DatabaseUserProvisioner(),
        verifier=verifier if verifier is not None else WebAuthnVerifier(),
    )


def create_app(
    settings: Settings | None = None,
    *,
    verifier: CeremonyVerifier | None = None,
    users: UserProvisioner | None = None,
    observability: ObservabilitySettings | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application serving the passkey ceremonies."""
    if settings is None:
        settings = Settings()

    db = Database.from_settings(settings)
    ceremonies = build_ceremony_service(settings, db, verifier=verifier, users=users)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if settings.auto_upgrade:
            if settings.env == "production":
                logger.warning(
                    "PASSKEY_DEMO_AUTO_UPGRADE is enabled in production; "
                    "this is an explicit operator decision."
                )
            try:
                await asyncio.to_thread(run_upgrade_to_head, settings.database_url)
                logger.warning("database schema auto-upgrade completed to migration head")
            except PackagedMigrationsError:
                logger.warning("packaged migrations not found; installation may be broken")
            except Exception:  # noqa: BLE001
                logger.exception("database auto-upgrade failed")
                raise

        try:
            schema_status = await asyncio.to_thread(get_schema_status, settings.database_url)
            if schema_status.warning:
                logger.warning(schema_status.warning)
        except PackagedMigrationsError:
            logger.warning("packaged migrations not found; installation may be broken")

        await db.create_all()
        await ceremonies.challenges.purge_expired()
        yield
        await db.dispose()

    app = FastAPI(
        title="passkey-demo",
        description="WebAuthn passkey registration and authentication",
        version=PASSKEY_DEMO_VERSION,
        lifespan=lifespan,
    )
    init_observability(app, observability)

    # Store on app.state for dependency access.
    app.state.settings = settings
    app.state.db = db
    app.state.ceremonies = ceremonies

    app.include_router(passkey_router)

    # --- default routes ---
    class RootResponse(BaseModel):
        message: str = Field(..., description="Welcome message.")

    class HealthResponse(BaseModel):
        status: str = Field(..., description="Health status string.")

    @app.get(
        "/",
        response_model=RootResponse,
        summary="Welcome",
        description="Default root route.",
    )
    def root() -> RootResponse:
        return RootResponse(message="Passkey Demo")

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health",
        description="Basic health check for the app.",
    )
    def health() -> HealthResponse:
        return HealthResponse(status="healthy")

    return app


__all__ = ["build_ceremony_service", "create_app"]

"""Environment-driven configuration using pydantic-settings."""

from __future__ import annotations

import warnings

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration, overridable via env vars prefixed ``PASSKEY_DEMO_``."""

    model_config = SettingsConfigDict(
        env_prefix="PASSKEY_DEMO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- environment ---
    env: str = "development"

    # --- database ---
    database_url: str = "sqlite:///./passkey_demo.db"
    auto_upgrade: bool = False
    storage_timeout_seconds: float = 5.0

    # --- WebAuthn / Passkeys ---
    rp_id: str = ""
    rp_name: str = "Passkey Demo"
    origin: str = ""
    challenge_ttl_seconds: int = 300
    user_verification: str = "preferred"
    attestation: str = "none"
    verify_timeout_seconds: float = 10.0

    def effective_rp_id(self) -> str:
        """Return the WebAuthn relying party ID."""
        if self.rp_id:
            return self.rp_id
        if self.env == "production":
            raise RuntimeError("PASSKEY_DEMO_RP_ID must be set in production mode.")
        warnings.warn(
            "Using 'localhost' as WebAuthn RP ID. Set PASSKEY_DEMO_RP_ID for production.",
            UserWarning,
            stacklevel=2,
        )
        return "localhost"

    def effective_origin(self) -> str:
        """Return the expected WebAuthn origin."""
        if self.origin:
            return self.origin
        if self.env == "production":
            raise RuntimeError("PASSKEY_DEMO_ORIGIN must be set in production mode.")
        warnings.warn(
            "Using 'http://localhost:3000' as WebAuthn origin. "
            "Set PASSKEY_DEMO_ORIGIN for production.",
            UserWarning,
            stacklevel=2,
        )
        return "http://localhost:3000"

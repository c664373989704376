"""Environment-driven observability settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class ObservabilitySettings(BaseSettings):
    """Observability configuration, env vars prefixed ``PASSKEY_DEMO_``."""

    model_config = SettingsConfigDict(env_prefix="PASSKEY_DEMO_", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s [%(trace_id)s] %(name)s: %(message)s"
    trace_header: str = "x-trace-id"

"""Observability helpers - logging setup, trace ids, redaction."""

from passkey_demo.obs.redaction import redact_headers, redact_identifier
from passkey_demo.obs.settings import ObservabilitySettings
from passkey_demo.obs.setup import configure_logging, init_observability

__all__ = [
    "ObservabilitySettings",
    "configure_logging",
    "init_observability",
    "redact_headers",
    "redact_identifier",
]

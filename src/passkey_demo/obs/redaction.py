"""Redaction utilities - keep secrets and full identifiers out of logs."""

from __future__ import annotations

# Header names that must never appear in logs.
_SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "x-api-key",
        "cookie",
        "set-cookie",
    }
)

_VISIBLE_CHARS = 6


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of *headers* with sensitive entries masked."""
    return {k: "[REDACTED]" if k.lower() in _SENSITIVE_HEADERS else v for k, v in headers.items()}


def redact_identifier(value: str | None) -> str:
    """Shorten a credential id, challenge or flow id to a log-safe prefix."""
    if not value:
        return "-"
    if len(value) <= _VISIBLE_CHARS:
        return "[REDACTED]"
    return value[:_VISIBLE_CHARS] + "..."

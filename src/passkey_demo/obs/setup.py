"""Initialise logging and trace-id middleware."""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from passkey_demo.obs.redaction import redact_headers
from passkey_demo.obs.settings import ObservabilitySettings

logger = logging.getLogger(__name__)

_trace_id: ContextVar[str] = ContextVar("passkey_demo_trace_id", default="-")


class _TraceIdFilter(logging.Filter):
    """Stamp every record with the current request's trace id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _trace_id.get()
        return True


class _TraceIdMiddleware(BaseHTTPMiddleware):
    """Attach a ``X-Trace-Id`` header to every response."""

    def __init__(self, app, header: str = "x-trace-id") -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self.header = header

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = request.headers.get(self.header, uuid.uuid4().hex)
        token = _trace_id.set(trace_id)
        request.state.trace_id = trace_id
        try:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "%s %s headers=%s",
                    request.method,
                    request.url.path,
                    redact_headers(dict(request.headers)),
                )
            response = await call_next(request)
        finally:
            _trace_id.reset(token)
        response.headers["X-Trace-Id"] = trace_id
        return response


def configure_logging(settings: ObservabilitySettings | None = None) -> None:
    """Configure the ``passkey_demo`` logger hierarchy. Safe to call twice."""
    if settings is None:
        settings = ObservabilitySettings()

    root = logging.getLogger("passkey_demo")
    root.setLevel(settings.log_level.upper())
    if any(getattr(h, "_passkey_demo", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(settings.log_format))
    handler.addFilter(_TraceIdFilter())
    handler._passkey_demo = True  # type: ignore[attr-defined]
    root.addHandler(handler)


def init_observability(
    app: FastAPI,
    settings: ObservabilitySettings | None = None,
) -> None:
    """Wire up logging and the trace-id middleware."""
    if settings is None:
        settings = ObservabilitySettings()

    configure_logging(settings)
    app.add_middleware(_TraceIdMiddleware, header=settings.trace_header)

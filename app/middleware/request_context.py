"""
Request context middleware
Assigns a correlation ID and a W3C trace context to every request so that
log entries emitted while handling it can be tied together.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import config

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
trace_id_ctx: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
span_id_ctx: ContextVar[Optional[str]] = ContextVar("span_id", default=None)

TRACEPARENT_PATTERN = re.compile(r'^00-([0-9a-f]{32})-([0-9a-f]{16})-[0-9a-f]{2}$')


def get_correlation_id() -> Optional[str]:
    """Get the correlation ID from the current context"""
    return correlation_id_ctx.get()


def get_trace_id() -> Optional[str]:
    """Get the trace ID from the current context"""
    return trace_id_ctx.get()


def extract_trace_context(traceparent: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Extract traceId and spanId from W3C traceparent header
    Format: 00-{32-hex-traceId}-{16-hex-spanId}-{2-hex-flags}
    """
    if not traceparent:
        return None

    match = TRACEPARENT_PATTERN.match(traceparent)
    if match:
        trace_id, span_id = match.groups()
        if trace_id != '0' * 32 and span_id != '0' * 16:
            return trace_id, span_id

    return None


def generate_trace_context() -> Tuple[str, str]:
    """Generate new (trace_id, span_id) as 32-char and 16-char hex strings"""
    return uuid.uuid4().hex, uuid.uuid4().hex[:16]


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    - Reads the correlation ID header (or generates one)
    - Reads the W3C traceparent header (or generates a new trace context)
    - Stores both in context vars and request state
    - Echoes both in response headers
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(config.correlation_id_header) or str(uuid.uuid4())
        trace_context = extract_trace_context(request.headers.get("traceparent"))
        trace_id, span_id = trace_context or generate_trace_context()

        correlation_id_ctx.set(correlation_id)
        trace_id_ctx.set(trace_id)
        span_id_ctx.set(span_id)
        request.state.correlation_id = correlation_id
        request.state.trace_id = trace_id

        response = await call_next(request)

        response.headers[config.correlation_id_header] = correlation_id
        response.headers["traceparent"] = f"00-{trace_id}-{span_id}-01"
        response.headers["X-Trace-ID"] = trace_id
        return response

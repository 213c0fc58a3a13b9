"""HTTP middleware: request metrics, correlation IDs and access logging."""

import logging
import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from edustream.core.logging import clear_correlation_id, set_correlation_id
from edustream.core.metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL

logger = logging.getLogger("edustream.requests")

CORRELATION_ID_HEADER = "X-Correlation-ID"
# Set by Google front ends on push deliveries: "TRACE_ID/SPAN_ID;o=1"
CLOUD_TRACE_HEADER = "X-Cloud-Trace-Context"

# Query parameters never written to logs
REDACTED_PARAMS = frozenset({"token"})

_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
_NUMERIC_SEGMENT_RE = re.compile(r"/\d+(?=/|$)")


def route_label(path: str) -> str:
    """Collapse record IDs in a path so metric labels stay bounded."""
    return _NUMERIC_SEGMENT_RE.sub("/{id}", _UUID_RE.sub("{id}", path))


def incoming_correlation_id(request: Request) -> Optional[str]:
    correlation_id = request.headers.get(CORRELATION_ID_HEADER)
    if correlation_id:
        return correlation_id
    trace = request.headers.get(CLOUD_TRACE_HEADER)
    if trace:
        return trace.split("/", 1)[0] or None
    return None


def safe_query(request: Request) -> str:
    return "&".join(
        f"{key}={'***' if key in REDACTED_PARAMS else value}"
        for key, value in request.query_params.multi_items()
    )


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count requests and time them per route."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        endpoint = route_label(request.url.path)
        started = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, endpoint=endpoint).observe(
                time.perf_counter() - started
            )
            HTTP_REQUESTS_TOTAL.labels(
                method=request.method, endpoint=endpoint, status_code=str(status_code)
            ).inc()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation ID for the request and echo it in the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = incoming_correlation_id(request) or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per completed request, or the error if it raised."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        fields = {
            "method": request.method,
            "path": request.url.path,
            "query": safe_query(request),
        }

        try:
            response = await call_next(request)
        except Exception:
            fields["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
            logger.error("Request failed", extra=fields, exc_info=True)
            raise

        fields["status_code"] = response.status_code
        fields["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
        logger.info("Request completed", extra=fields)
        return response

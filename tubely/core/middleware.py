"""HTTP middleware: Prometheus metrics, correlation IDs and access logging."""

import logging
import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from tubely.core.logging import clear_correlation_id, set_correlation_id
from tubely.core.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_REQUESTS_TOTAL,
)

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Path segments that are IDs: UUIDs or plain integers
_ID_SEGMENT = re.compile(
    r"/(?:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|\d+)(?=/|$)",
    re.IGNORECASE,
)

# Probed constantly; not worth an access log line each
_QUIET_PATHS = frozenset({"/health", "/metrics"})

access_logger = logging.getLogger("tubely.access")


def normalize_path(path: str) -> str:
    """Collapse ID segments so metric label cardinality stays bounded.

    ``/api/videos/6f1c...`` becomes ``/api/videos/{id}``.
    """
    return _ID_SEGMENT.sub("/{id}", path)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts requests and records their latency per method and path."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        labels = {"method": request.method, "endpoint": normalize_path(request.url.path)}
        in_progress = HTTP_REQUESTS_IN_PROGRESS.labels(**labels)
        in_progress.inc()

        status_code = 500
        start = time.perf_counter()
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            HTTP_REQUEST_DURATION_SECONDS.labels(**labels).observe(time.perf_counter() - start)
            HTTP_REQUESTS_TOTAL.labels(status_code=str(status_code), **labels).inc()
            in_progress.dec()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Adopts the caller's correlation ID, or mints one, and echoes it back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Writes one access log line per request.

    Upload sizes are taken from Content-Length; bodies are never read here.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        start = time.perf_counter()
        fields = {
            "method": request.method,
            "path": path,
            "client_ip": request.client.host if request.client else None,
            "content_length": request.headers.get("content-length"),
        }

        try:
            response = await call_next(request)
        except Exception:
            access_logger.exception(
                "Request failed",
                extra={**fields, "duration_ms": _elapsed_ms(start)},
            )
            raise

        if path not in _QUIET_PATHS:
            access_logger.info(
                "%s %s %d",
                request.method,
                path,
                response.status_code,
                extra={
                    **fields,
                    "status_code": response.status_code,
                    "duration_ms": _elapsed_ms(start),
                },
            )
        return response


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


__all__ = [
    "MetricsMiddleware",
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "normalize_path",
]

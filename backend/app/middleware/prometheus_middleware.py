"""
Prometheus metrics middleware for HTTP request tracking.

Feeds request duration, status and in-flight counts into prometheus_metrics.
"""

import re
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..monitoring.prometheus_metrics import prometheus_metrics

METRICS_PATH = "/metrics/prometheus"

_ID_SEGMENT = re.compile(r"^(?:\d+|[0-9A-HJKMNP-TV-Z]{26})$")


def normalize_path(raw_path: str) -> str:
    """
    Collapse numeric and ULID path segments to reduce label cardinality.

    /api/v1/bookings/01HZX.../cancel -> /api/v1/bookings/:id/cancel
    """
    return "/".join(
        ":id" if _ID_SEGMENT.match(segment) else segment for segment in raw_path.split("/")
    )


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for HTTP requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == METRICS_PATH:
            return await call_next(request)

        method = request.method
        path = normalize_path(request.url.path)

        prometheus_metrics.track_http_request_start(method, path)
        start_time = time.time()

        try:
            response = await call_next(request)
            duration = time.time() - start_time

            prometheus_metrics.record_http_request(
                method=method, endpoint=path, duration=duration, status_code=response.status_code
            )

            return response

        finally:
            # Always track request end
            prometheus_metrics.track_http_request_end(method, path)

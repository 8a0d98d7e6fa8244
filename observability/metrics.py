"""Prometheus metrics for the HTTP API and the backup engine."""

from __future__ import annotations

import time

from fastapi import Request
from prometheus_client import Counter, Histogram, make_asgi_app
from starlette.middleware.base import BaseHTTPMiddleware

http_requests = Counter(
    "http_requests",
    "HTTP requests by route template",
    ["method", "route", "status"],
)
http_latency_ms = Histogram(
    "http_latency_ms",
    "HTTP request latency in ms",
    ["route"],
    buckets=(5, 25, 100, 500, 2000, 10000, 60000, 900000),
)

tool_invocations = Counter(
    "tool_invocations",
    "External MongoDB tool invocations",
    ["tool", "outcome"],
)
tool_duration_ms = Histogram(
    "tool_duration_ms",
    "External MongoDB tool runtime in ms",
    ["tool"],
    buckets=(100, 500, 1000, 5000, 15000, 60000, 300000, 900000),
)

retention_deletions = Counter(
    "retention_deletions",
    "Artifacts removed by retention",
    ["kind", "outcome"],
)

metrics_app = make_asgi_app()


def _route_template(request: Request) -> str:
    # Artifact names in paths would explode label cardinality.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count requests and observe latency per route template."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        route = _route_template(request)
        http_latency_ms.labels(route).observe((time.perf_counter() - start) * 1000)
        http_requests.labels(request.method, route, str(response.status_code)).inc()
        return response

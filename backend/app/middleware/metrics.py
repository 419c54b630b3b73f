"""
Prometheus metrics middleware.

Collects HTTP request metrics (counter + histogram) and exposes workflow-level
counters for status transitions, responses and authorization denials.
"""

import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Workflow metrics ─────────────────────────────────────────────────────────

complaints_created_total = Counter(
    "complaints_created_total",
    "Total complaints filed",
    ["priority"],
)

complaint_transitions_total = Counter(
    "complaint_transitions_total",
    "Applied complaint status transitions",
    ["from_status", "to_status"],
)

complaint_responses_total = Counter(
    "complaint_responses_total",
    "Responses appended to the ledger",
    ["with_transition"],
)

authorization_denials_total = Counter(
    "authorization_denials_total",
    "Authorization decisions that denied an action",
    ["action", "role"],
)

store_failures_total = Counter(
    "store_failures_total",
    "Persistence store failures surfaced to callers",
    ["kind"],
)


def _normalize_path(path: str) -> str:
    """Collapse path parameters to reduce cardinality.

    e.g. /api/complaints/42/responses → /api/complaints/{id}/responses
    """
    parts = path.strip("/").split("/")
    normalized = []
    for i, part in enumerate(parts):
        if i > 1 and (part.isdigit() or len(part) > 20):
            normalized.append("{id}")
        else:
            normalized.append(part)
    return "/" + "/".join(normalized)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Skip metrics endpoint itself to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        http_requests_total.labels(
            method=method,
            path=path,
            status_code=response.status_code,
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            path=path,
        ).observe(duration)

        return response

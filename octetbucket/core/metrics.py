from __future__ import annotations

from prometheus_client import Counter, Histogram

_HTTP_REQUESTS_TOTAL = Counter(
    "octetbucket_http_requests_total",
    "Total HTTP requests handled by the service.",
    labelnames=("method", "route", "status_code"),
)
_HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "octetbucket_http_request_duration_seconds",
    "HTTP request duration in seconds.",
    labelnames=("method", "route"),
)
_BLOB_OPERATIONS_TOTAL = Counter(
    "octetbucket_blob_operations_total",
    "Blob store operations by outcome.",
    labelnames=("operation", "outcome"),
)


_FIXED_ROUTES = {"/", "/healthz", "/readyz", "/metrics"}


def route_label(path: str) -> str:
    # Paths are client-chosen; collapse them so label cardinality stays fixed.
    if path in _FIXED_ROUTES:
        return path
    if path.startswith("/r/"):
        return "/r/{key}"
    return "/{other}"


def observe_http_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
) -> None:
    safe_route = route_label(path)
    safe_method = method or "UNKNOWN"

    _HTTP_REQUESTS_TOTAL.labels(
        method=safe_method,
        route=safe_route,
        status_code=str(status_code),
    ).inc()
    _HTTP_REQUEST_DURATION_SECONDS.labels(method=safe_method, route=safe_route).observe(
        max(0.0, duration_ms / 1000.0)
    )


def observe_blob_operation(*, operation: str, outcome: str) -> None:
    _BLOB_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()

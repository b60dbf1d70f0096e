from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

_NUMERIC_SEGMENT_RE = re.compile(r"^\d+$")
_UUID_SEGMENT_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
ID_PLACEHOLDER = "{id}"

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests.",
    labelnames=("method", "endpoint", "status_code"),
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds.",
    labelnames=("method", "endpoint", "status_code"),
)

errors_total = Counter(
    "errors_total",
    "Total number of errors by type and code.",
    labelnames=("error_type", "error_code"),
)

auth_attempts_total = Counter(
    "auth_attempts_total",
    "Total number of authentication attempts.",
    labelnames=("type", "status"),
)

database_operations_total = Counter(
    "database_operations_total",
    "Total number of database operations.",
    labelnames=("operation", "table", "status"),
)
database_operation_duration_seconds = Histogram(
    "database_operation_duration_seconds",
    "Database operation duration in seconds.",
    labelnames=("operation", "table"),
    buckets=(
        0.001,
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)


def normalize_path(path: str) -> str:
    """Replace numeric and UUID path segments with ``{id}`` to bound label cardinality."""
    segments = path.split("/")
    normalized = [
        ID_PLACEHOLDER
        if _NUMERIC_SEGMENT_RE.fullmatch(segment) or _UUID_SEGMENT_RE.fullmatch(segment)
        else segment
        for segment in segments
    ]
    return "/".join(normalized)


def record_http_request(method: str, endpoint: str, status_code: int, duration: float) -> None:
    status = str(status_code)
    http_requests_total.labels(method=method, endpoint=endpoint, status_code=status).inc()
    http_request_duration_seconds.labels(
        method=method, endpoint=endpoint, status_code=status
    ).observe(duration)


def record_error(error_type: str, error_code: str) -> None:
    errors_total.labels(error_type=error_type, error_code=error_code).inc()


def record_auth_attempt(auth_type: str, status: str) -> None:
    auth_attempts_total.labels(type=auth_type, status=status).inc()


def render_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

from __future__ import annotations

import json
import logging
import re
import sys

import pytest
from httpx import AsyncClient
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError

from conftest import bearer, register_user
from tasktrack_api.db.session import get_db_session
from tasktrack_api.observability.context import request_id_var
from tasktrack_api.observability.logging import JsonFormatter, RequestContextFilter
from tasktrack_api.observability.metrics import normalize_path

_GENERATED_REQUEST_ID_RE = re.compile(r"^\d{14}-[0-9a-f]{12}$")


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def access_records():
    handler = _ListHandler()
    logger = logging.getLogger("tasktrack_api.access")
    logger.addHandler(handler)
    yield handler.records
    logger.removeHandler(handler)


@pytest.mark.asyncio
async def test_request_id_is_added_to_responses(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}
    request_id = response.headers.get("x-request-id")
    assert request_id
    assert _GENERATED_REQUEST_ID_RE.fullmatch(request_id)


@pytest.mark.asyncio
async def test_request_ids_are_unique(client: AsyncClient) -> None:
    first = await client.get("/health")
    second = await client.get("/health")
    assert first.headers["x-request-id"] != second.headers["x-request-id"]


@pytest.mark.asyncio
async def test_client_request_id_is_not_reused(client: AsyncClient, access_records) -> None:
    first = await client.get("/health", headers={"X-Request-ID": "same"})
    second = await client.get("/health", headers={"X-Request-ID": "same"})
    assert first.status_code == 200
    ids = [first.headers["x-request-id"], second.headers["x-request-id"]]
    assert ids[0] != ids[1]
    assert all(_GENERATED_REQUEST_ID_RE.fullmatch(request_id) for request_id in ids)

    logged = [r for r in access_records if getattr(r, "url", None) == "/health"]
    assert [r.request_id for r in logged] == ids
    assert [r.client_request_id for r in logged] == ["same", "same"]


@pytest.mark.asyncio
async def test_unsafe_request_id_is_replaced(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-ID": "bad id with spaces"})
    assert _GENERATED_REQUEST_ID_RE.fullmatch(response.headers["x-request-id"])


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client: AsyncClient) -> None:
    response = await client.get("/does-not-exist")
    assert response.status_code == 404
    payload = response.json()
    assert payload["error"]["code"] == "NOT_FOUND"
    assert payload["error"]["request_id"] == response.headers["x-request-id"]


@pytest.mark.asyncio
async def test_wrong_method_is_method_not_allowed(client: AsyncClient) -> None:
    response = await client.patch("/api/tasks")
    assert response.status_code == 405
    assert response.json()["error"]["code"] == "METHOD_NOT_ALLOWED"


@pytest.mark.asyncio
async def test_unhandled_exception_becomes_internal_error(app, client: AsyncClient) -> None:
    async def explode() -> None:
        raise RuntimeError("secret connection string leaked")

    app.add_api_route("/boom", explode, methods=["GET"])

    response = await client.get("/boom")
    assert response.status_code == 500
    payload = response.json()
    assert payload["success"] is False
    assert payload["error"]["code"] == "INTERNAL_ERROR"
    assert payload["error"]["type"] == "server_error"
    assert "secret" not in response.text
    assert response.headers["x-request-id"]

    follow_up = await client.get("/health")
    assert follow_up.status_code == 200


@pytest.mark.asyncio
async def test_metrics_endpoint_exposed(client: AsyncClient) -> None:
    _, token = await register_user(client)
    await client.get("/api/tasks/12345", headers=bearer(token))
    await client.get("/api/tasks")

    response = await client.get("/metrics")
    assert response.status_code == 200
    body = response.text
    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "database_operations_total" in body

    assert REGISTRY.get_sample_value(
        "http_requests_total",
        {"method": "GET", "endpoint": "/api/tasks/{id}", "status_code": "404"},
    ) >= 1
    assert REGISTRY.get_sample_value(
        "errors_total", {"error_type": "client_error", "error_code": "AUTH_REQUIRED"}
    ) >= 1
    assert REGISTRY.get_sample_value(
        "auth_attempts_total", {"type": "register", "status": "success"}
    ) >= 1
    assert REGISTRY.get_sample_value(
        "database_operations_total",
        {"operation": "INSERT", "table": "users", "status": "success"},
    ) >= 1


@pytest.mark.asyncio
async def test_every_request_is_access_logged(client: AsyncClient, access_records) -> None:
    response = await client.get("/api/tasks", params={"status": "all"})
    assert response.status_code == 401

    (record,) = [r for r in access_records if getattr(r, "url", None) == "/api/tasks"]
    assert record.getMessage() == "HTTP Request"
    assert record.method == "GET"
    assert record.status_code == 401
    assert record.request_id == response.headers["x-request-id"]
    assert record.query_string == "status=all"
    assert record.duration >= 0


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/api/tasks", "/api/tasks"),
        ("/api/tasks/42", "/api/tasks/{id}"),
        ("/api/items/123e4567-e89b-12d3-a456-426614174000/notes", "/api/items/{id}/notes"),
        ("/api/tasks/abc", "/api/tasks/abc"),
    ],
)
def test_normalize_path(path: str, expected: str) -> None:
    assert normalize_path(path) == expected


def test_json_formatter_promotes_request_fields() -> None:
    record = logging.LogRecord(
        name="tasktrack_api.access",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="HTTP Request",
        args=(),
        exc_info=None,
    )
    record.method = "GET"
    record.url = "/api/tasks"
    record.status_code = 200
    record.duration = 0.0123
    record.endpoint = "/api/tasks"

    token = request_id_var.set("req-abc")
    try:
        RequestContextFilter().filter(record)
    finally:
        request_id_var.reset(token)

    payload = json.loads(JsonFormatter().format(record))
    assert payload["level"] == "INFO"
    assert payload["message"] == "HTTP Request"
    assert payload["request_id"] == "req-abc"
    assert payload["method"] == "GET"
    assert payload["status_code"] == 200
    assert payload["duration"] == 0.0123
    assert payload["fields"] == {"endpoint": "/api/tasks"}
    assert "timestamp" in payload


def test_json_formatter_includes_stack_trace() -> None:
    try:
        raise ValueError("broken")
    except ValueError:
        record = logging.LogRecord(
            name="tasktrack_api",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="Server error occurred",
            args=(),
            exc_info=sys.exc_info(),
        )
    payload = json.loads(JsonFormatter().format(record))
    assert payload["level"] == "ERROR"
    assert "ValueError" in payload["error"]
    assert "Traceback" in payload["stack_trace"]


class _UnreachableSession:
    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))


@pytest.mark.asyncio
async def test_health_reports_unavailable_database(app, client: AsyncClient) -> None:
    async def unreachable_session():
        yield _UnreachableSession()

    app.dependency_overrides[get_db_session] = unreachable_session
    response = await client.get("/health")
    assert response.status_code == 503
    assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"
    assert "refused" not in response.text

from __future__ import annotations

import datetime as dt
import logging
import re
import secrets
import time
from collections.abc import Callable

from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from tasktrack_api.observability import metrics
from tasktrack_api.observability.context import request_id_var, user_id_var

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")

logger = logging.getLogger(__name__)

AccessLog = Callable[[dict[str, object]], None]
Recover = Callable[[Scope, Exception], Response]


def generate_request_id() -> str:
    """Second-resolution UTC prefix plus 48 random bits."""
    prefix = dt.datetime.now(dt.UTC).strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{secrets.token_hex(6)}"


def _client_request_id(scope: Scope, header_name: bytes) -> str | None:
    headers = scope.get("headers") or []
    for name, value in headers:
        if name == header_name:
            decoded = value.decode("utf-8", errors="ignore").strip()
            if decoded and _REQUEST_ID_RE.fullmatch(decoded):
                return decoded
            return None
    return None


class RequestContextMiddleware:
    """Outermost request wrapper.

    Generates the correlation id before the app runs, sets it as a response
    header, recovers from exceptions that escaped every handler, and reports
    one access log line and one request metric per request.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        header_name: str = "x-request-id",
        access_log: AccessLog | None = None,
        recover: Recover | None = None,
        tracing: bool = False,
    ) -> None:
        self._app = app
        self._header_name = header_name.lower().encode("ascii")
        self._access_log = access_log
        self._recover = recover
        self._tracing = tracing

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        # The correlation id is always generated here; a caller-supplied one is only logged.
        request_id = generate_request_id()
        client_request_id = _client_request_id(scope, self._header_name)
        request_token = request_id_var.set(request_id)
        user_token = user_id_var.set(None)
        start = time.perf_counter()
        status_code: int | None = None
        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code, response_started
            if message["type"] == "http.response.start":
                response_started = True
                status_code = int(message["status"])
                headers = list(message.get("headers") or [])
                headers.append((self._header_name, request_id.encode("ascii")))
                message["headers"] = headers
            await send(message)

        try:
            try:
                if self._tracing:
                    await _call_with_trace(
                        app=self._app,
                        scope=scope,
                        receive=receive,
                        send=send_wrapper,
                        request_id=request_id,
                        get_status_code=lambda: status_code,
                    )
                else:
                    await self._app(scope, receive, send_wrapper)
            except Exception as exc:
                if response_started:
                    logger.exception(
                        "Unhandled error after response started",
                        extra={"method": scope.get("method"), "url": scope.get("path")},
                    )
                    raise
                response = self._recovery_response(scope, exc)
                await response(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - start
            method = scope.get("method") or "UNKNOWN"
            path = scope.get("path") or ""
            endpoint = metrics.normalize_path(path)
            final_status = status_code if status_code is not None else 500
            metrics.record_http_request(method, endpoint, final_status, duration)
            if self._access_log is not None:
                self._access_log(
                    {
                        "request_id": request_id,
                        "client_request_id": client_request_id,
                        "user_id": user_id_var.get(),
                        "method": method,
                        "url": path,
                        "endpoint": endpoint,
                        "query_string": (scope.get("query_string") or b"").decode(
                            "utf-8", errors="ignore"
                        ),
                        "status_code": final_status,
                        "duration": duration,
                        "client": (scope.get("client") or [None, None])[0],
                    }
                )
            user_id_var.reset(user_token)
            request_id_var.reset(request_token)

    def _recovery_response(self, scope: Scope, exc: Exception) -> Response:
        if self._recover is not None:
            return self._recover(scope, exc)
        logger.error("Unhandled error occurred", exc_info=exc)
        return PlainTextResponse("Internal Server Error", status_code=500)


async def _call_with_trace(
    *,
    app: ASGIApp,
    scope: Scope,
    receive: Receive,
    send: Send,
    request_id: str,
    get_status_code: Callable[[], int | None],
) -> None:
    from opentelemetry import trace
    from opentelemetry.propagate import extract
    from opentelemetry.trace import SpanKind
    from opentelemetry.trace.status import Status, StatusCode

    tracer = trace.get_tracer("tasktrack_api")
    carrier: dict[str, str] = {}
    for name, value in (scope.get("headers") or []):
        carrier[name.decode("ascii", errors="ignore")] = value.decode("utf-8", errors="ignore")
    parent_ctx = extract(carrier)

    method = scope.get("method") or "UNKNOWN"
    path = scope.get("path") or ""
    with tracer.start_as_current_span(
        name=f"{method} {metrics.normalize_path(path)}",
        context=parent_ctx,
        kind=SpanKind.SERVER,
        attributes={
            "http.method": method,
            "http.target": path,
            "request.id": request_id,
        },
    ) as span:
        try:
            await app(scope, receive, send)
        except Exception as exc:  # noqa: BLE001
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            raise
        finally:
            status_code = get_status_code()
            if status_code is not None:
                span.set_attribute("http.status_code", status_code)
                if 500 <= int(status_code):
                    span.set_status(Status(StatusCode.ERROR))
                else:
                    span.set_status(Status(StatusCode.OK))

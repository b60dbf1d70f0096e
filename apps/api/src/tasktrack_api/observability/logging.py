from __future__ import annotations

import datetime as dt
import json
import logging
import traceback
from typing import Any

from tasktrack_api.observability.context import get_request_id, get_user_id
from tasktrack_api.settings import Settings

_CONFIGURED = False

# Record attributes promoted to top-level keys of the JSON line.
_TOP_LEVEL_FIELDS = ("method", "url", "status_code", "duration", "error", "stack_trace")

_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
    "request_id",
    "user_id",
    "trace_id",
    "span_id",
}


def _get_trace_context() -> tuple[str | None, str | None]:
    try:
        from opentelemetry.trace import get_current_span
    except Exception:  # noqa: BLE001
        return None, None

    span = get_current_span()
    context = span.get_span_context()
    if not context or not context.is_valid:
        return None, None
    return f"{context.trace_id:032x}", f"{context.span_id:016x}"


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        if getattr(record, "user_id", None) is None:
            record.user_id = get_user_id()
        trace_id, span_id = _get_trace_context()
        record.trace_id = trace_id
        record.span_id = span_id
        return True


class JsonFormatter(logging.Formatter):
    """Render one JSON object per line.

    ``method``, ``url``, ``status_code``, ``duration``, ``error`` and
    ``stack_trace`` extras are top-level keys; any other extra lands under
    ``fields``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "timestamp": dt.datetime.fromtimestamp(record.created, tz=dt.UTC).isoformat(),
            "logger": record.name,
        }
        for key in ("request_id", "user_id", "trace_id", "span_id"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        for key in _TOP_LEVEL_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            payload.setdefault("error", repr(record.exc_info[1]))
            payload["stack_trace"] = "".join(
                traceback.format_exception(*record.exc_info)
            ).rstrip()

        fields: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in _TOP_LEVEL_FIELDS:
                continue
            if value is None:
                continue
            fields[key] = value
        if fields:
            payload["fields"] = fields

        return json.dumps(payload, default=str)


def configure_logging(settings: Settings) -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    handler: logging.Handler = logging.StreamHandler()
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    handler.addFilter(RequestContextFilter())

    base = logging.getLogger("tasktrack_api")
    base.setLevel(settings.log_level)
    base.propagate = False
    if not base.handlers:
        base.addHandler(handler)

    _CONFIGURED = True


def access_log(event: dict[str, object]) -> None:
    logging.getLogger("tasktrack_api.access").info("HTTP Request", extra=event)

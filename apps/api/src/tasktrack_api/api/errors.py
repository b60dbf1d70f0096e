from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import Scope

from tasktrack_api.api.schemas import ErrorBody, ErrorResponse, FieldViolationPublic
from tasktrack_api.domain import errors
from tasktrack_api.domain.errors import AppError, FieldViolation
from tasktrack_api.observability import metrics
from tasktrack_api.observability.context import get_request_id
from tasktrack_api.time import utcnow

logger = logging.getLogger(__name__)

_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def render_app_error(error: AppError) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorBody(
            code=str(error.code),
            message=error.message,
            type=str(error.category),
            details=error.details or None,
            validation=[
                FieldViolationPublic(field=v.field, message=v.message, value=v.value)
                for v in error.validation
            ]
            or None,
            timestamp=error.timestamp,
            request_id=error.request_id,
        ),
        success=False,
        timestamp=utcnow(),
    )
    return JSONResponse(
        status_code=error.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


def report_app_error(error: AppError, *, method: str | None, path: str | None) -> AppError:
    """Attach the correlation id, then log and count the error once."""
    error = error.with_request_id(get_request_id())
    metrics.record_error(str(error.category), str(error.code))

    fields: dict[str, Any] = {
        "status_code": error.status_code,
        "error_code": str(error.code),
        "method": method,
        "url": path,
    }
    if error.is_server_error:
        cause = error.cause
        exc_info = (type(cause), cause, cause.__traceback__) if cause is not None else None
        logger.error("Server error occurred", exc_info=exc_info, extra=fields)
    else:
        fields["error_message"] = error.message
        if error.validation:
            fields["violations"] = [v.field for v in error.validation]
        logger.warning("Client error occurred", extra=fields)
    return error


def recover_unhandled_exception(scope: Scope, exc: Exception) -> JSONResponse:
    """Convert an exception that escaped every handler into ``INTERNAL_ERROR``."""
    error = errors.internal().with_cause(exc)
    error = report_app_error(error, method=scope.get("method"), path=scope.get("path"))
    return render_app_error(error)


def _violation_from_pydantic(detail: dict[str, Any]) -> FieldViolation:
    location = [str(part) for part in detail.get("loc", ())]
    if location and location[0] in _LOCATION_PREFIXES:
        location = location[1:]
    field = ".".join(location) or "body"
    if detail.get("type") == "missing":
        return FieldViolation(field=field, message="This field is required")
    return FieldViolation(field=field, message=str(detail.get("msg", "Invalid value")), value=detail.get("input"))


def app_error_from_request_validation(exc: RequestValidationError) -> AppError:
    details = list(exc.errors())
    if any(detail.get("type") == "json_invalid" for detail in details):
        return errors.invalid_json()
    if (
        len(details) == 1
        and details[0].get("type") == "missing"
        and tuple(details[0].get("loc", ())) == ("body",)
    ):
        return errors.missing_field("body")
    return errors.validation_failed([_violation_from_pydantic(detail) for detail in details])


def app_error_from_http_exception(exc: StarletteHTTPException) -> AppError:
    if exc.status_code == 404:
        return errors.not_found("Resource")
    if exc.status_code == 405:
        return errors.method_not_allowed()
    if exc.status_code == 401:
        return errors.auth_required()
    if exc.status_code == 403:
        return errors.forbidden()
    if exc.status_code == 503:
        return errors.service_unavailable()
    return errors.internal().with_cause(exc)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        error = report_app_error(exc, method=request.method, path=request.url.path)
        return render_app_error(error)

    @app.exception_handler(RequestValidationError)
    async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = report_app_error(
            app_error_from_request_validation(exc),
            method=request.method,
            path=request.url.path,
        )
        return render_app_error(error)

    @app.exception_handler(StarletteHTTPException)
    async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error = report_app_error(
            app_error_from_http_exception(exc),
            method=request.method,
            path=request.url.path,
        )
        response = render_app_error(error)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

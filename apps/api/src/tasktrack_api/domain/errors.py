from __future__ import annotations

import dataclasses
import datetime as dt
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from tasktrack_api.time import utcnow


class ErrorCode(StrEnum):
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    USER_EXISTS = "USER_EXISTS"

    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_JSON = "INVALID_JSON"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"

    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"


class ErrorCategory(StrEnum):
    client_error = "client_error"
    server_error = "server_error"
    validation_error = "validation_error"


# Each code has exactly one status and category.
ERROR_STATUS: dict[ErrorCode, tuple[int, ErrorCategory]] = {
    ErrorCode.AUTH_REQUIRED: (401, ErrorCategory.client_error),
    ErrorCode.INVALID_TOKEN: (401, ErrorCategory.client_error),
    ErrorCode.TOKEN_EXPIRED: (401, ErrorCategory.client_error),
    ErrorCode.INVALID_CREDENTIALS: (401, ErrorCategory.client_error),
    ErrorCode.USER_EXISTS: (409, ErrorCategory.client_error),
    ErrorCode.VALIDATION_FAILED: (400, ErrorCategory.validation_error),
    ErrorCode.INVALID_JSON: (400, ErrorCategory.client_error),
    ErrorCode.MISSING_FIELD: (400, ErrorCategory.validation_error),
    ErrorCode.INVALID_FORMAT: (400, ErrorCategory.validation_error),
    ErrorCode.NOT_FOUND: (404, ErrorCategory.client_error),
    ErrorCode.FORBIDDEN: (403, ErrorCategory.client_error),
    ErrorCode.CONFLICT: (409, ErrorCategory.client_error),
    ErrorCode.INTERNAL_ERROR: (500, ErrorCategory.server_error),
    ErrorCode.DATABASE_ERROR: (500, ErrorCategory.server_error),
    ErrorCode.SERVICE_UNAVAILABLE: (503, ErrorCategory.server_error),
    ErrorCode.METHOD_NOT_ALLOWED: (405, ErrorCategory.client_error),
}


@dataclass(frozen=True)
class FieldViolation:
    field: str
    message: str
    value: Any = None


@dataclass(eq=False)
class AppError(Exception):
    """Typed failure carried from handlers to the error layer.

    Instances are treated as values: the ``with_*`` helpers return copies and
    never modify the receiver. ``cause`` is kept for logs only and is never
    rendered into a client response.
    """

    code: ErrorCode
    message: str
    status_code: int
    category: ErrorCategory
    validation: tuple[FieldViolation, ...] = ()
    details: dict[str, Any] | None = None
    cause: BaseException | None = None
    request_id: str | None = None
    timestamp: dt.datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.code}: {self.message} (caused by: {self.cause!r})"
        return f"{self.code}: {self.message}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AppError):
            return NotImplemented
        return self.code == other.code

    def __hash__(self) -> int:
        return hash(self.code)

    @property
    def is_server_error(self) -> bool:
        return self.category is ErrorCategory.server_error

    def with_cause(self, cause: BaseException) -> AppError:
        return dataclasses.replace(self, cause=cause)

    def with_request_id(self, request_id: str | None) -> AppError:
        return dataclasses.replace(self, request_id=request_id)

    def with_details(self, details: dict[str, Any]) -> AppError:
        return dataclasses.replace(self, details=dict(details))


def _make(code: ErrorCode, message: str, **kwargs: Any) -> AppError:
    status_code, category = ERROR_STATUS[code]
    return AppError(
        code=code,
        message=message,
        status_code=status_code,
        category=category,
        **kwargs,
    )


def auth_required() -> AppError:
    return _make(ErrorCode.AUTH_REQUIRED, "Authentication required")


def invalid_token() -> AppError:
    return _make(ErrorCode.INVALID_TOKEN, "Invalid or malformed token")


def token_expired() -> AppError:
    return _make(ErrorCode.TOKEN_EXPIRED, "Token has expired")


def invalid_credentials() -> AppError:
    return _make(ErrorCode.INVALID_CREDENTIALS, "Invalid email or password")


def user_exists() -> AppError:
    return _make(ErrorCode.USER_EXISTS, "User already exists")


def validation_failed(violations: list[FieldViolation] | tuple[FieldViolation, ...]) -> AppError:
    return _make(
        ErrorCode.VALIDATION_FAILED,
        "Input validation failed",
        validation=tuple(violations),
    )


def invalid_json() -> AppError:
    return _make(ErrorCode.INVALID_JSON, "Invalid JSON format")


def missing_field(name: str) -> AppError:
    return _make(
        ErrorCode.MISSING_FIELD,
        f"Missing required field: {name}",
        validation=(FieldViolation(field=name, message="This field is required"),),
    )


def invalid_format(field_name: str, expected: str) -> AppError:
    return _make(
        ErrorCode.INVALID_FORMAT,
        f"Invalid format for field '{field_name}', expected: {expected}",
        validation=(FieldViolation(field=field_name, message=f"Expected {expected}"),),
    )


def not_found(resource: str) -> AppError:
    return _make(ErrorCode.NOT_FOUND, f"{resource} not found")


def forbidden() -> AppError:
    return _make(ErrorCode.FORBIDDEN, "Access forbidden")


def conflict(message: str) -> AppError:
    return _make(ErrorCode.CONFLICT, message)


def internal() -> AppError:
    return _make(ErrorCode.INTERNAL_ERROR, "Internal server error")


def database_error() -> AppError:
    return _make(ErrorCode.DATABASE_ERROR, "Database operation failed")


def service_unavailable() -> AppError:
    return _make(ErrorCode.SERVICE_UNAVAILABLE, "Service temporarily unavailable")


def method_not_allowed() -> AppError:
    return _make(ErrorCode.METHOD_NOT_ALLOWED, "Method not allowed")

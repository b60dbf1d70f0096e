from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Any

from email_validator import EmailNotValidError, validate_email

from tasktrack_api.domain.errors import AppError, FieldViolation, validation_failed

Rule = Callable[[Any], str | None]

_USERNAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
EMAIL_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
TASK_TITLE_MAX_LENGTH = 200
TASK_DESCRIPTION_MAX_LENGTH = 1000
TASK_LIST_MAX_LIMIT = 100
TASK_STATUS_FILTERS = ("all", "completed", "pending")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def required() -> Rule:
    def rule(value: Any) -> str | None:
        if _is_blank(value):
            return "This field is required"
        return None

    return rule


def not_empty() -> Rule:
    def rule(value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            return "Value must be a string"
        if not value.strip():
            return "This field cannot be empty"
        return None

    return rule


def min_length(n: int) -> Rule:
    def rule(value: Any) -> str | None:
        if _is_blank(value):
            return None
        if not isinstance(value, str):
            return "Value must be a string"
        if len(value.strip()) < n:
            return f"Must be at least {n} characters long"
        return None

    return rule


def max_length(n: int) -> Rule:
    def rule(value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            return "Value must be a string"
        if len(value) > n:
            return f"Must be no more than {n} characters long"
        return None

    return rule


def email() -> Rule:
    def rule(value: Any) -> str | None:
        if _is_blank(value):
            return None
        if not isinstance(value, str):
            return "Value must be a string"
        try:
            validate_email(value.strip(), check_deliverability=False)
        except EmailNotValidError:
            return "Must be a valid email address"
        return None

    return rule


def username_format() -> Rule:
    def rule(value: Any) -> str | None:
        if _is_blank(value):
            return None
        if not isinstance(value, str):
            return "Value must be a string"
        candidate = value.strip()
        if not USERNAME_MIN_LENGTH <= len(candidate) <= USERNAME_MAX_LENGTH:
            return (
                f"Username must be between {USERNAME_MIN_LENGTH} and "
                f"{USERNAME_MAX_LENGTH} characters"
            )
        if not candidate[0].isascii() or not candidate[0].isalpha():
            return "Username must start with a letter"
        if not _USERNAME_RE.fullmatch(candidate):
            return "Username can only contain letters, numbers, and underscores"
        return None

    return rule


def password_strength() -> Rule:
    def rule(value: Any) -> str | None:
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            return "Value must be a string"
        if len(value) < PASSWORD_MIN_LENGTH:
            return f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
        if len(value) > PASSWORD_MAX_LENGTH:
            return f"Password must be no more than {PASSWORD_MAX_LENGTH} characters long"
        if not any(char.isupper() for char in value):
            return "Password must contain at least one uppercase letter"
        if not any(char.islower() for char in value):
            return "Password must contain at least one lowercase letter"
        if not any(char.isdigit() for char in value):
            return "Password must contain at least one number"
        return None

    return rule


def numeric_range(lo: int, hi: int) -> Rule:
    def rule(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            return "Value must be a number"
        if value < lo or value > hi:
            return f"Value must be between {lo} and {hi}"
        return None

    return rule


def one_of(choices: Iterable[Any]) -> Rule:
    allowed = tuple(choices)

    def rule(value: Any) -> str | None:
        if value is None:
            return None
        if value not in allowed:
            return f"Value must be one of: {', '.join(str(choice) for choice in allowed)}"
        return None

    return rule


class Validator:
    """Collects violations across fields and reports them as one error."""

    def __init__(self) -> None:
        self._violations: list[FieldViolation] = []

    @property
    def violations(self) -> list[FieldViolation]:
        return list(self._violations)

    def has_errors(self) -> bool:
        return bool(self._violations)

    def add(self, field_name: str, message: str, value: Any = None) -> Validator:
        self._violations.append(FieldViolation(field=field_name, message=message, value=value))
        return self

    def field(self, field_name: str, value: Any, *rules: Rule) -> Validator:
        for rule in rules:
            message = rule(value)
            if message is not None:
                self.add(field_name, message, value)
        return self

    def error(self) -> AppError | None:
        if not self._violations:
            return None
        return validation_failed(self._violations)

    def raise_for_errors(self) -> None:
        error = self.error()
        if error is not None:
            raise error


def _redacted(value: str | None) -> str | None:
    # Rejected passwords are reported without echoing the value back.
    return None if value is None else "***"


def validate_register(username: str | None, email_address: str | None, password: str | None) -> None:
    validator = Validator()
    validator.field("username", username, required(), username_format())
    validator.field("email", email_address, required(), max_length(EMAIL_MAX_LENGTH), email())
    for rule in (required(), password_strength()):
        message = rule(password)
        if message is not None:
            validator.add("password", message, _redacted(password))
    validator.raise_for_errors()


def validate_login(email_address: str | None, password: str | None) -> None:
    validator = Validator()
    validator.field("email", email_address, required(), max_length(EMAIL_MAX_LENGTH), email())
    message = required()(password)
    if message is not None:
        validator.add("password", message)
    validator.raise_for_errors()


def validate_task(title: str | None, description: str | None) -> None:
    (
        Validator()
        .field("title", title, required(), max_length(TASK_TITLE_MAX_LENGTH))
        .field("description", description, max_length(TASK_DESCRIPTION_MAX_LENGTH))
        .raise_for_errors()
    )


def validate_profile(
    first_name: str | None,
    last_name: str | None,
    avatar_url: str | None,
) -> None:
    validator = Validator()
    validator.field("first_name", first_name, not_empty(), max_length(100))
    validator.field("last_name", last_name, not_empty(), max_length(100))
    validator.field("avatar_url", avatar_url, max_length(255))
    validator.raise_for_errors()


def validate_task_listing(status: str | None, limit: int | None, offset: int | None) -> None:
    validator = Validator()
    validator.field("status", status, one_of(TASK_STATUS_FILTERS))
    validator.field("limit", limit, numeric_range(1, TASK_LIST_MAX_LIMIT))
    validator.field("offset", offset, numeric_range(0, 1_000_000))
    validator.raise_for_errors()

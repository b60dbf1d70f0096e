from __future__ import annotations

import pytest

from tasktrack_api.domain.errors import AppError, ErrorCode
from tasktrack_api.domain.validation import (
    EMAIL_MAX_LENGTH,
    Validator,
    email,
    max_length,
    min_length,
    numeric_range,
    one_of,
    password_strength,
    required,
    username_format,
    validate_login,
    validate_register,
    validate_task,
    validate_task_listing,
)


def _violations(exc: pytest.ExceptionInfo[AppError]) -> dict[str, str]:
    return {violation.field: violation.message for violation in exc.value.validation}


@pytest.mark.parametrize("value", [None, "", "   "])
def test_required_rejects_blank(value) -> None:
    assert required()(value) == "This field is required"


def test_non_presence_rules_skip_blank_values() -> None:
    for rule in (min_length(3), email(), username_format(), password_strength()):
        assert rule("") is None
        assert rule(None) is None


def test_length_rules() -> None:
    assert min_length(3)("ab") == "Must be at least 3 characters long"
    assert min_length(3)("abc") is None
    assert max_length(5)("abcdef") == "Must be no more than 5 characters long"
    assert max_length(5)("abcde") is None


@pytest.mark.parametrize("value", ["user@example.com", "first.last+tag@example.org"])
def test_email_accepts_valid_addresses(value: str) -> None:
    assert email()(value) is None


@pytest.mark.parametrize("value", ["bad", "user@", "@example.com", "a b@example.com"])
def test_email_rejects_invalid_addresses(value: str) -> None:
    assert email()(value) == "Must be a valid email address"


@pytest.mark.parametrize(
    ("value", "message"),
    [
        ("ab", "Username must be between 3 and 30 characters"),
        ("x" * 31, "Username must be between 3 and 30 characters"),
        ("1abc", "Username must start with a letter"),
        ("ab-cd", "Username can only contain letters, numbers, and underscores"),
        ("alice_01", None),
    ],
)
def test_username_format(value: str, message: str | None) -> None:
    assert username_format()(value) == message


@pytest.mark.parametrize(
    ("value", "message"),
    [
        ("weak", "Password must be at least 8 characters long"),
        ("alllowercase1", "Password must contain at least one uppercase letter"),
        ("ALLUPPERCASE1", "Password must contain at least one lowercase letter"),
        ("NoDigitsHere", "Password must contain at least one number"),
        ("Passw0rdOK", None),
    ],
)
def test_password_strength(value: str, message: str | None) -> None:
    assert password_strength()(value) == message


def test_numeric_range_and_one_of() -> None:
    assert numeric_range(1, 100)(0) == "Value must be between 1 and 100"
    assert numeric_range(1, 100)(100) is None
    assert numeric_range(1, 100)(True) == "Value must be a number"
    assert one_of(("all", "pending"))("done") == "Value must be one of: all, pending"
    assert one_of(("all", "pending"))("pending") is None


def test_validator_collects_every_failure() -> None:
    validator = Validator().field("name", "", required()).field("age", 200, numeric_range(0, 150))
    assert validator.has_errors()
    error = validator.error()
    assert error is not None
    assert error.code is ErrorCode.VALIDATION_FAILED
    assert [violation.field for violation in error.validation] == ["name", "age"]


def test_empty_validator_has_no_error() -> None:
    validator = Validator().field("name", "ok", required())
    assert not validator.has_errors()
    assert validator.error() is None
    validator.raise_for_errors()


def test_register_reports_all_fields_at_once() -> None:
    with pytest.raises(AppError) as exc:
        validate_register("ab", "bad", "weak")
    assert exc.value.status_code == 400
    assert set(_violations(exc)) == {"username", "email", "password"}


def test_register_does_not_echo_password() -> None:
    with pytest.raises(AppError) as exc:
        validate_register("alice", "alice@example.com", "weak")
    (violation,) = exc.value.validation
    assert violation.field == "password"
    assert violation.value == "***"


def test_task_title_is_required_and_bounded() -> None:
    with pytest.raises(AppError) as exc:
        validate_task("", "x" * 1001)
    assert _violations(exc) == {
        "title": "This field is required",
        "description": "Must be no more than 1000 characters long",
    }
    validate_task("Write report", "")


def test_task_listing_parameters() -> None:
    validate_task_listing("all", None, None)
    validate_task_listing("pending", 100, 0)
    with pytest.raises(AppError) as exc:
        validate_task_listing("done", 0, -1)
    assert set(_violations(exc)) == {"status", "limit", "offset"}


def test_email_longer_than_the_column_is_rejected() -> None:
    long_email = f"{'a' * 60}@{'b' * 50}.example.com"
    assert len(long_email) > EMAIL_MAX_LENGTH
    assert email()(long_email) is None

    with pytest.raises(AppError) as exc:
        validate_register("alice", long_email, "Passw0rdOK")
    assert _violations(exc) == {"email": "Must be no more than 100 characters long"}

    with pytest.raises(AppError) as exc:
        validate_login(long_email, "Passw0rdOK")
    assert set(_violations(exc)) == {"email"}

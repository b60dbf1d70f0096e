from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    status: str = "ok"
    database: str = "ok"


class FieldViolationPublic(BaseModel):
    field: str
    message: str
    value: Any = None


class ErrorBody(BaseModel):
    code: str
    message: str
    type: str
    details: dict[str, Any] | None = None
    validation: list[FieldViolationPublic] | None = None
    timestamp: dt.datetime
    request_id: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody
    success: bool = False
    timestamp: dt.datetime


# Request bodies default missing strings to "" so the field validators can
# report every absent field in one response.
class RegisterRequest(BaseModel):
    username: str = ""
    email: str = ""
    password: str = ""


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class TaskWriteRequest(BaseModel):
    title: str = ""
    description: str = ""
    completed: bool = False


class ProfileUpdateRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str


class UserProfile(UserPublic):
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    is_active: bool
    role: str
    last_login_at: dt.datetime | None = None
    created_at: dt.datetime
    updated_at: dt.datetime


class AuthResponse(BaseModel):
    user: UserPublic
    message: str


class MessageResponse(BaseModel):
    message: str


class ProfileResponse(BaseModel):
    user: UserProfile
    message: str


class ClaimsResponse(BaseModel):
    user_id: int
    username: str
    expires_at: dt.datetime


class TaskPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    completed: bool
    user_id: int
    created_at: dt.datetime
    updated_at: dt.datetime


class TasksResponse(BaseModel):
    tasks: list[TaskPublic]
    count: int
    username: str

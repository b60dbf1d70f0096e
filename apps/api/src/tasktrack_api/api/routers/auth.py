from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from tasktrack_api.api.schemas import (
    AuthResponse,
    ClaimsResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserPublic,
)
from tasktrack_api.auth.deps import CurrentClaims
from tasktrack_api.auth.passwords import hash_password_async, verify_password_async
from tasktrack_api.auth.tokens import issue_token
from tasktrack_api.db.models import User
from tasktrack_api.db.session import DbSessionDep
from tasktrack_api.domain.errors import invalid_credentials, user_exists
from tasktrack_api.domain.validation import validate_login, validate_register
from tasktrack_api.observability.metrics import record_auth_attempt
from tasktrack_api.observability.ops import observe_db_operation
from tasktrack_api.settings import Settings, get_settings
from tasktrack_api.time import UtcNow, get_utcnow

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _cookie_secure(request: Request, settings: Settings) -> bool:
    return settings.auth_cookie_secure or request.url.scheme == "https"


def set_auth_cookie(response: Response, request: Request, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=_cookie_secure(request, settings),
        domain=settings.auth_cookie_domain,
        max_age=settings.token_ttl_seconds,
        path="/",
    )


def clear_auth_cookie(response: Response, request: Request, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        domain=settings.auth_cookie_domain,
        secure=_cookie_secure(request, settings),
        httponly=True,
        samesite="strict",
    )


def _normalize_email(value: str) -> str:
    return value.strip().lower()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: DbSessionDep,
    settings: Settings = Depends(get_settings),
    now: UtcNow = Depends(get_utcnow),
) -> AuthResponse:
    validate_register(body.username, body.email, body.password)
    username = body.username.strip()
    email = _normalize_email(body.email)

    async with observe_db_operation("SELECT", "users"):
        existing = await db.scalar(
            select(User.id).where(or_(User.username == username, User.email == email))
        )
    if existing is not None:
        record_auth_attempt("register", "conflict")
        raise user_exists()

    password_hash = await hash_password_async(body.password, settings)
    timestamp = now()
    user = User(
        username=username,
        email=email,
        password_hash=password_hash,
        created_at=timestamp,
        updated_at=timestamp,
    )
    async with observe_db_operation("INSERT", "users"):
        db.add(user)
        try:
            await db.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same username/email.
            await db.rollback()
            record_auth_attempt("register", "conflict")
            raise user_exists().with_cause(exc) from exc

    token = issue_token(user.id, user.username, settings=settings, now=now())
    set_auth_cookie(response, request, token, settings)
    record_auth_attempt("register", "success")
    logger.info("User registered", extra={"user_id": user.id, "username": user.username})
    return AuthResponse(user=UserPublic.model_validate(user), message="Registration successful")


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: DbSessionDep,
    settings: Settings = Depends(get_settings),
    now: UtcNow = Depends(get_utcnow),
) -> AuthResponse:
    validate_login(body.email, body.password)

    async with observe_db_operation("SELECT", "users"):
        user = await db.scalar(select(User).where(User.email == _normalize_email(body.email)))

    # Unknown email, inactive account and wrong password are indistinguishable to the client.
    password_hash = user.password_hash if user is not None and user.is_active else None
    password_ok = await verify_password_async(body.password, password_hash, settings)
    if user is None or not password_ok:
        record_auth_attempt("login", "failure")
        raise invalid_credentials()

    user.last_login_at = now()
    async with observe_db_operation("UPDATE", "users"):
        await db.commit()

    token = issue_token(user.id, user.username, settings=settings, now=now())
    set_auth_cookie(response, request, token, settings)
    record_auth_attempt("login", "success")
    logger.info("User logged in", extra={"user_id": user.id})
    return AuthResponse(user=UserPublic.model_validate(user), message="Login successful")


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    # Tokens are not revoked server-side; clearing the cookie ends the browser session.
    clear_auth_cookie(response, request, settings)
    return MessageResponse(message="Logout successful")


@router.get("/user", response_model=ClaimsResponse)
async def current_user(claims: CurrentClaims) -> ClaimsResponse:
    return ClaimsResponse(
        user_id=claims.subject_id,
        username=claims.subject_name,
        expires_at=claims.expires_at,
    )

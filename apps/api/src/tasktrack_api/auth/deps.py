from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from tasktrack_api.auth.tokens import Claims, verify_token
from tasktrack_api.domain.errors import AppError, auth_required, invalid_token
from tasktrack_api.observability.context import bind_user_id
from tasktrack_api.observability.metrics import record_auth_attempt
from tasktrack_api.settings import Settings, get_settings
from tasktrack_api.time import UtcNow, get_utcnow

BEARER_SCHEME = "Bearer"


def extract_token(request: Request, settings: Settings) -> str:
    """Return the credential from the auth cookie, else from ``Authorization: Bearer``."""
    cookie_token = request.cookies.get(settings.auth_cookie_name)
    if cookie_token:
        return cookie_token

    header = request.headers.get("authorization")
    if header is None or not header.strip():
        raise auth_required()

    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_SCHEME or not parts[1]:
        raise invalid_token()
    return parts[1]


async def require_claims(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    now: Annotated[UtcNow, Depends(get_utcnow)],
) -> Claims:
    token = extract_token(request, settings)
    try:
        claims = verify_token(token, settings=settings, now=now())
    except AppError as exc:
        record_auth_attempt("token", "failure")
        raise invalid_token().with_cause(exc) from exc

    bind_user_id(claims.subject_id)
    return claims


CurrentClaims = Annotated[Claims, Depends(require_claims)]

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt

from tasktrack_api.domain.errors import internal, invalid_token, token_expired
from tasktrack_api.settings import Settings
from tasktrack_api.time import from_epoch_seconds, to_epoch_seconds

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Claims:
    subject_id: int
    subject_name: str
    expires_at: dt.datetime


def issue_token(
    subject_id: int,
    subject_name: str,
    *,
    settings: Settings,
    now: dt.datetime,
) -> str:
    """Sign a token for the subject that expires ``settings.token_ttl_seconds`` after ``now``."""
    expires_at = now + dt.timedelta(seconds=settings.token_ttl_seconds)
    payload: dict[str, Any] = {
        "sub": str(subject_id),
        "username": subject_name,
        "iat": to_epoch_seconds(now),
        "exp": to_epoch_seconds(expires_at),
    }
    try:
        return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)
    except JWTError as exc:
        raise internal().with_cause(exc) from exc


def verify_token(token: str, *, settings: Settings, now: dt.datetime) -> Claims:
    """Check signature, algorithm, claim shape and expiry.

    Only HS256 is accepted, so tokens declaring ``none`` or an asymmetric
    algorithm fail before any claim is read. Expiry is compared against
    ``now`` here; callers do not re-check it.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise invalid_token().with_cause(exc) from exc
    if header.get("alg") != JWT_ALGORITHM:
        raise invalid_token().with_details({"reason": "unexpected_algorithm"})

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            options={"verify_exp": False, "verify_aud": False},
        )
    except JWTError as exc:
        raise invalid_token().with_cause(exc) from exc

    claims = _claims_from_payload(payload)
    if now >= claims.expires_at:
        raise token_expired()
    return claims


def _claims_from_payload(payload: dict[str, Any]) -> Claims:
    subject = payload.get("sub")
    username = payload.get("username")
    expires = payload.get("exp")
    if not isinstance(subject, str) or not (subject.isascii() and subject.isdigit()):
        raise invalid_token()
    if not isinstance(username, str) or not username:
        raise invalid_token()
    if isinstance(expires, bool) or not isinstance(expires, (int, float)):
        raise invalid_token()
    return Claims(
        subject_id=int(subject),
        subject_name=username,
        expires_at=from_epoch_seconds(expires),
    )

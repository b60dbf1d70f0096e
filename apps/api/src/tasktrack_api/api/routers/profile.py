from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack_api.api.schemas import ProfileResponse, ProfileUpdateRequest, UserProfile
from tasktrack_api.auth.deps import CurrentClaims
from tasktrack_api.db.models import User
from tasktrack_api.db.session import DbSessionDep
from tasktrack_api.domain.errors import not_found
from tasktrack_api.domain.validation import validate_profile
from tasktrack_api.observability.ops import observe_db_operation
from tasktrack_api.time import UtcNow, get_utcnow

router = APIRouter(prefix="/api", tags=["profile"])


async def _load_user(db: AsyncSession, user_id: int) -> User:
    async with observe_db_operation("SELECT", "users"):
        user = await db.get(User, user_id)
    if user is None:
        raise not_found("User")
    return user


@router.get("/profile", response_model=UserProfile)
async def get_profile(db: DbSessionDep, claims: CurrentClaims) -> UserProfile:
    user = await _load_user(db, claims.subject_id)
    return UserProfile.model_validate(user)


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    db: DbSessionDep,
    claims: CurrentClaims,
    now: UtcNow = Depends(get_utcnow),
) -> ProfileResponse:
    """Apply the fields present in the request; absent fields keep their stored value."""
    validate_profile(body.first_name, body.last_name, body.avatar_url)
    user = await _load_user(db, claims.subject_id)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for name, value in changes.items():
        setattr(user, name, value.strip() if name != "avatar_url" else value)
    user.updated_at = now()
    async with observe_db_operation("UPDATE", "users"):
        await db.commit()

    return ProfileResponse(user=UserProfile.model_validate(user), message="Profile updated successfully")

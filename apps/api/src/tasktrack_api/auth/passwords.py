from __future__ import annotations

from functools import lru_cache

from passlib.hash import bcrypt
from starlette.concurrency import run_in_threadpool

from tasktrack_api.settings import Settings


@lru_cache(maxsize=8)
def _placeholder_hash(rounds: int) -> str:
    # Stands in for a missing account so its check costs the same as a real one.
    return bcrypt.using(rounds=rounds).hash("unknown-user-placeholder")


def hash_password(password: str, settings: Settings) -> str:
    """bcrypt hash with the configured cost factor."""
    return bcrypt.using(rounds=settings.password_bcrypt_rounds).hash(password)


def verify_password(password: str, hashed_password: str | None, settings: Settings) -> bool:
    """Verify password against bcrypt hash; a missing hash never verifies."""
    if hashed_password is None:
        bcrypt.verify(password, _placeholder_hash(settings.password_bcrypt_rounds))
        return False
    return bcrypt.verify(password, hashed_password)


async def hash_password_async(password: str, settings: Settings) -> str:
    return await run_in_threadpool(hash_password, password, settings)


async def verify_password_async(password: str, hashed_password: str | None, settings: Settings) -> bool:
    return await run_in_threadpool(verify_password, password, hashed_password, settings)

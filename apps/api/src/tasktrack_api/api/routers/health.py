from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from tasktrack_api.api.schemas import HealthResponse
from tasktrack_api.db.session import DbSessionDep
from tasktrack_api.domain.errors import AppError, service_unavailable
from tasktrack_api.observability.ops import observe_db_operation

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(db: DbSessionDep) -> HealthResponse:
    """Report readiness; an unreachable database turns into ``SERVICE_UNAVAILABLE``."""
    try:
        async with observe_db_operation("SELECT", "health"):
            await db.execute(text("SELECT 1"))
    except AppError as exc:
        raise service_unavailable().with_cause(exc) from exc
    return HealthResponse(status="ok", database="ok")

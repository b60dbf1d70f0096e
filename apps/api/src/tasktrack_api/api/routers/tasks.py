from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack_api.api.schemas import TaskPublic, TasksResponse, TaskWriteRequest
from tasktrack_api.auth.deps import CurrentClaims
from tasktrack_api.db.models import Task
from tasktrack_api.db.session import DbSessionDep
from tasktrack_api.domain.errors import invalid_format, not_found
from tasktrack_api.domain.validation import validate_task, validate_task_listing
from tasktrack_api.observability.ops import observe_db_operation
from tasktrack_api.time import UtcNow, get_utcnow

router = APIRouter(prefix="/api/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)

# Identifiers beyond a 32-bit signed integer cannot exist in the tasks table.
_MAX_TASK_ID = 2**31 - 1


def parse_task_id(raw: str) -> int:
    if not raw.isascii() or not raw.isdigit():
        raise invalid_format("task_id", "integer")
    task_id = int(raw)
    if task_id < 1 or task_id > _MAX_TASK_ID:
        raise not_found("Task")
    return task_id


async def _get_owned_task(db: AsyncSession, task_id: int, user_id: int) -> Task:
    # Tasks of other users are reported as missing so their existence is not revealed.
    async with observe_db_operation("SELECT", "tasks", attributes={"task.id": task_id}):
        task = await db.scalar(select(Task).where(Task.id == task_id, Task.user_id == user_id))
    if task is None:
        raise not_found("Task")
    return task


@router.get("", response_model=TasksResponse)
async def list_tasks(
    db: DbSessionDep,
    claims: CurrentClaims,
    status_filter: str = Query(default="all", alias="status"),
    limit: int | None = Query(default=None),
    offset: int | None = Query(default=None),
) -> TasksResponse:
    validate_task_listing(status_filter, limit, offset)

    query = select(Task).where(Task.user_id == claims.subject_id)
    if status_filter == "completed":
        query = query.where(Task.completed.is_(True))
    elif status_filter == "pending":
        query = query.where(Task.completed.is_(False))
    query = query.order_by(Task.created_at.desc(), Task.id.desc())
    if limit is not None:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)

    async with observe_db_operation("SELECT", "tasks"):
        tasks = (await db.scalars(query)).all()

    return TasksResponse(
        tasks=[TaskPublic.model_validate(task) for task in tasks],
        count=len(tasks),
        username=claims.subject_name,
    )


@router.post("", response_model=TaskPublic, status_code=status.HTTP_201_CREATED)
async def create_task(
    body: TaskWriteRequest,
    db: DbSessionDep,
    claims: CurrentClaims,
    now: UtcNow = Depends(get_utcnow),
) -> TaskPublic:
    validate_task(body.title, body.description)
    timestamp = now()
    task = Task(
        title=body.title.strip(),
        description=body.description,
        completed=body.completed,
        user_id=claims.subject_id,
        created_at=timestamp,
        updated_at=timestamp,
    )
    async with observe_db_operation("INSERT", "tasks"):
        db.add(task)
        await db.commit()

    logger.info("Task created", extra={"task_id": task.id, "title": task.title})
    return TaskPublic.model_validate(task)


@router.get("/{task_id}", response_model=TaskPublic)
async def get_task(task_id: str, db: DbSessionDep, claims: CurrentClaims) -> TaskPublic:
    task = await _get_owned_task(db, parse_task_id(task_id), claims.subject_id)
    return TaskPublic.model_validate(task)


@router.put("/{task_id}", response_model=TaskPublic)
async def update_task(
    task_id: str,
    body: TaskWriteRequest,
    db: DbSessionDep,
    claims: CurrentClaims,
    now: UtcNow = Depends(get_utcnow),
) -> TaskPublic:
    parsed_id = parse_task_id(task_id)
    validate_task(body.title, body.description)
    task = await _get_owned_task(db, parsed_id, claims.subject_id)

    task.title = body.title.strip()
    task.description = body.description
    task.completed = body.completed
    task.updated_at = now()
    async with observe_db_operation("UPDATE", "tasks", attributes={"task.id": parsed_id}):
        await db.commit()

    logger.info("Task updated", extra={"task_id": task.id, "completed": task.completed})
    return TaskPublic.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_task(task_id: str, db: DbSessionDep, claims: CurrentClaims) -> Response:
    parsed_id = parse_task_id(task_id)
    async with observe_db_operation("DELETE", "tasks", attributes={"task.id": parsed_id}):
        result = await db.execute(
            delete(Task).where(Task.id == parsed_id, Task.user_id == claims.subject_id)
        )
        await db.commit()
    if result.rowcount == 0:
        raise not_found("Task")

    logger.info("Task deleted", extra={"task_id": parsed_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)

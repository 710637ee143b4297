"""
Task service layer: business logic for tasks.

Handles:
- Task CRUD, authorized through the cross-entity access resolver
- Default position assignment under a project row lock
- Per-project listing with filters, and organization-wide search
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

import sqlalchemy as sa
import structlog
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgdesk.authz.access import resolve_project_access, resolve_task_access
from orgdesk.authz.guards import check_co_membership
from orgdesk.authz.permissions import Capability
from orgdesk.core.errors import OrganizationMismatch
from orgdesk.models.task import Task
from orgdesk_shared.schemas.common import Pagination, TaskPriority, TaskStatus
from orgdesk_shared.schemas.tasks import (
    TaskCreate,
    TaskMetadata,
    TaskRead,
    TaskUpdate,
)

log = structlog.get_logger()

# Columns an explicit null in an update must not clear
REQUIRED_FIELDS = {"title", "status", "priority", "tags"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_task_read(task: Task) -> TaskRead:
    """Convert a Task ORM object to a TaskRead."""
    return TaskRead(
        id=task.id,
        project_id=task.project_id,
        organization_id=task.organization_id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        due_date=task.due_date,
        estimated_hours=task.estimated_hours,
        actual_hours=task.actual_hours,
        assignee_id=task.assignee_id,
        created_by=task.created_by,
        position=task.position,
        tags=task.tags or [],
        metadata=TaskMetadata.model_validate(task.meta or {}),
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def tag_match(tag: str):
    """Tags are stored as a JSON array; match one element exactly."""
    return sa.cast(Task.tags, sa.String).contains(json.dumps(tag), autoescape=True)


async def next_position(session: AsyncSession, project_id: uuid.UUID) -> int:
    """Max position in the project plus one, 0 for an empty project.

    Only meaningful while the caller holds the project row lock.
    """
    result = await session.execute(
        select(func.max(Task.position)).where(Task.project_id == project_id)
    )
    current = result.scalar_one_or_none()
    return 0 if current is None else current + 1


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_task(
    session: AsyncSession,
    task_in: TaskCreate,
    user_id: uuid.UUID,
) -> Task:
    access = await resolve_project_access(session, task_in.project_id, user_id, lock=True)
    project = access.project
    if task_in.organization_id is not None and task_in.organization_id != project.organization_id:
        raise OrganizationMismatch()
    # Creation shares the project create flag; later changes use can_manage_tasks
    access.require(Capability.CREATE_PROJECTS)
    await check_co_membership(session, project.organization_id, task_in.assignee_id)

    position = task_in.position
    if position is None:
        position = await next_position(session, project.id)

    task = Task(
        project_id=project.id,
        organization_id=project.organization_id,
        title=task_in.title,
        description=task_in.description,
        status=task_in.status.value,
        priority=task_in.priority.value,
        due_date=task_in.due_date,
        estimated_hours=task_in.estimated_hours,
        actual_hours=task_in.actual_hours,
        assignee_id=task_in.assignee_id,
        created_by=user_id,
        position=position,
        tags=list(task_in.tags),
        meta=task_in.metadata.model_dump(mode="json"),
    )
    session.add(task)
    await session.flush()

    log.info("task.created", task_id=str(task.id), project_id=str(project.id), position=position)
    return task


async def get_task(session: AsyncSession, task_id: uuid.UUID, user_id: uuid.UUID) -> Task:
    access = await resolve_task_access(session, task_id, user_id)
    return access.task


async def update_task(
    session: AsyncSession,
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    user_id: uuid.UUID,
) -> Task:
    access = await resolve_task_access(session, task_id, user_id)
    access.require(Capability.MANAGE_TASKS)
    task = access.task
    await check_co_membership(session, task.organization_id, task_in.assignee_id)

    changes = task_in.model_dump(exclude_unset=True, exclude={"metadata"})
    for field, value in changes.items():
        if value is None and field in REQUIRED_FIELDS:
            continue
        if isinstance(value, (TaskStatus, TaskPriority)):
            value = value.value
        setattr(task, field, value)

    if task_in.metadata is not None:
        merged = {**(task.meta or {}), **task_in.metadata}
        task.meta = TaskMetadata.model_validate(merged).model_dump(mode="json")

    task.updated_at = datetime.now(timezone.utc)
    session.add(task)
    await session.flush()

    log.info("task.updated", task_id=str(task.id), fields=sorted(task_in.model_fields_set))
    return task


async def update_task_position(
    session: AsyncSession,
    task_id: uuid.UUID,
    position: int,
    user_id: uuid.UUID,
) -> Task:
    access = await resolve_task_access(session, task_id, user_id)
    access.require(Capability.MANAGE_TASKS)
    task = access.task

    task.position = position
    task.updated_at = datetime.now(timezone.utc)
    session.add(task)
    await session.flush()

    log.info("task.moved", task_id=str(task.id), position=position)
    return task


async def delete_task(session: AsyncSession, task_id: uuid.UUID, user_id: uuid.UUID) -> None:
    access = await resolve_task_access(session, task_id, user_id)
    access.require(Capability.MANAGE_TASKS)

    await session.delete(access.task)
    await session.flush()

    log.info("task.deleted", task_id=str(task_id))


# ---------------------------------------------------------------------------
# Listing and search
# ---------------------------------------------------------------------------


async def list_project_tasks(
    session: AsyncSession,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    statuses: Sequence[TaskStatus] = (),
    priorities: Sequence[TaskPriority] = (),
    assignee_ids: Sequence[uuid.UUID] = (),
    tags: Sequence[str] = (),
    due_date_from: Optional[datetime] = None,
    due_date_to: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[TaskRead], Pagination]:
    """Tasks of one project, manual order first, newest first within a position."""
    await resolve_project_access(session, project_id, user_id)

    conditions = [Task.project_id == project_id]
    if statuses:
        conditions.append(Task.status.in_([s.value for s in statuses]))
    if priorities:
        conditions.append(Task.priority.in_([p.value for p in priorities]))
    if assignee_ids:
        conditions.append(Task.assignee_id.in_(list(assignee_ids)))
    if tags:
        conditions.append(or_(*(tag_match(t) for t in tags)))
    if due_date_from:
        conditions.append(Task.due_date >= due_date_from)
    if due_date_to:
        conditions.append(Task.due_date <= due_date_to)

    total = (
        await session.execute(select(func.count()).select_from(Task).where(*conditions))
    ).scalar_one()
    result = await session.execute(
        select(Task)
        .where(*conditions)
        .order_by(Task.position.asc(), Task.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [to_task_read(t) for t in result.scalars().all()]
    return items, Pagination.build(page, limit, total)


async def search_tasks(
    session: AsyncSession,
    organization_id: uuid.UUID,
    query: str,
    *,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[TaskRead], Pagination]:
    """Case-insensitive substring match on title/description, or exact tag match.

    Every task of the organization is a candidate; matches are paged newest
    first with no ranking.
    """
    conditions = [
        Task.organization_id == organization_id,
        or_(
            Task.title.icontains(query, autoescape=True),
            Task.description.icontains(query, autoescape=True),
            tag_match(query),
        ),
    ]

    total = (
        await session.execute(select(func.count()).select_from(Task).where(*conditions))
    ).scalar_one()
    result = await session.execute(
        select(Task)
        .where(*conditions)
        .order_by(Task.created_at.desc(), Task.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [to_task_read(t) for t in result.scalars().all()]
    return items, Pagination.build(page, limit, total)

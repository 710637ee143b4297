"""
Project service layer.

Handles:
- Project CRUD, with edit/delete authorized against the membership found by
  the cross-entity access resolver
- Organization project listing with per-project task counters
- Organization-wide project and task statistics
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import and_, case, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgdesk.authz.access import resolve_project_access
from orgdesk.authz.context import TenantContext
from orgdesk.authz.permissions import Capability
from orgdesk.models.project import Project
from orgdesk.models.task import Task
from orgdesk.services.organizations import deep_merge
from orgdesk.services.tasks import to_task_read
from orgdesk_shared.schemas.common import Pagination, ProjectStatus, TaskStatus
from orgdesk_shared.schemas.projects import (
    ProjectCreate,
    ProjectDetail,
    ProjectRead,
    ProjectSettings,
    ProjectStats,
    ProjectSummary,
    ProjectUpdate,
)

log = structlog.get_logger()

RECENT_TASKS_LIMIT = 50
CLOSED_TASK_STATUSES = (TaskStatus.DONE.value, TaskStatus.CANCELLED.value)
# Columns an explicit null in an update must not clear
REQUIRED_FIELDS = {"name", "status", "progress", "tags"}


def _done_count():
    return func.coalesce(func.sum(case((Task.status == TaskStatus.DONE.value, 1), else_=0)), 0)


def _overdue_count(now: datetime):
    overdue = and_(
        Task.due_date.is_not(None),
        Task.due_date < now,
        Task.status.not_in(CLOSED_TASK_STATUSES),
    )
    return func.coalesce(func.sum(case((overdue, 1), else_=0)), 0)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def create_project(
    session: AsyncSession,
    tenant: TenantContext,
    req: ProjectCreate,
) -> Project:
    """Create a project. The route has already checked ``can_create_projects``."""
    project = Project(
        organization_id=tenant.organization_id,
        name=req.name,
        description=req.description,
        status=req.status.value,
        start_date=req.start_date,
        end_date=req.end_date,
        progress=req.progress,
        budget=req.budget,
        settings=req.settings.model_dump(mode="json"),
        tags=list(req.tags),
        created_by=tenant.user_id,
    )
    session.add(project)
    await session.flush()

    log.info("project.created", project_id=str(project.id), name=project.name)
    return project


async def get_project_detail(
    session: AsyncSession,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
) -> ProjectDetail:
    access = await resolve_project_access(session, project_id, user_id)
    result = await session.execute(
        select(Task)
        .where(Task.project_id == project_id)
        .order_by(Task.created_at.desc())
        .limit(RECENT_TASKS_LIMIT)
    )
    tasks = [to_task_read(t) for t in result.scalars().all()]
    return ProjectDetail(
        **ProjectRead.model_validate(access.project).model_dump(),
        tasks=tasks,
    )


async def update_project(
    session: AsyncSession,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    req: ProjectUpdate,
) -> Project:
    access = await resolve_project_access(session, project_id, user_id)
    access.require(Capability.EDIT_PROJECTS)
    project = access.project

    changes = req.model_dump(exclude_unset=True, exclude={"settings"})
    for field, value in changes.items():
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(project, field, value.value if isinstance(value, ProjectStatus) else value)

    if req.settings is not None:
        merged = deep_merge(project.settings, req.settings)
        project.settings = ProjectSettings.model_validate(merged).model_dump(mode="json")

    # Re-run cross-field validation on the result
    ProjectRead.model_validate(project)

    project.updated_at = datetime.now(timezone.utc)
    session.add(project)
    await session.flush()

    log.info("project.updated", project_id=str(project.id), fields=sorted(req.model_fields_set))
    return project


async def delete_project(
    session: AsyncSession,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
) -> None:
    access = await resolve_project_access(session, project_id, user_id)
    access.require(Capability.DELETE_PROJECTS)

    await session.execute(delete(Task).where(Task.project_id == project_id))
    await session.delete(access.project)
    await session.flush()

    log.info("project.deleted", project_id=str(project_id))


# ---------------------------------------------------------------------------
# Listing and statistics
# ---------------------------------------------------------------------------

async def list_projects(
    session: AsyncSession,
    organization_id: uuid.UUID,
    *,
    status: ProjectStatus | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[ProjectSummary], Pagination]:
    now = datetime.now(timezone.utc)
    conditions = [Project.organization_id == organization_id]
    if status:
        conditions.append(Project.status == status.value)

    total = (
        await session.execute(select(func.count()).select_from(Project).where(*conditions))
    ).scalar_one()

    result = await session.execute(
        select(
            Project,
            func.count(Task.id),
            _done_count(),
            _overdue_count(now),
        )
        .outerjoin(Task, Task.project_id == Project.id)
        .where(*conditions)
        .group_by(Project.id)
        .order_by(Project.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [
        ProjectSummary(
            **ProjectRead.model_validate(project).model_dump(),
            total_tasks=total_tasks,
            completed_tasks=completed,
            overdue_tasks=overdue,
        )
        for project, total_tasks, completed, overdue in result.all()
    ]
    return items, Pagination.build(page, limit, total)


async def project_stats(session: AsyncSession, organization_id: uuid.UUID) -> ProjectStats:
    now = datetime.now(timezone.utc)
    projects = (
        await session.execute(
            select(
                func.count(Project.id),
                func.coalesce(func.sum(case((Project.status == ProjectStatus.ACTIVE.value, 1), else_=0)), 0),
                func.coalesce(func.sum(case((Project.status == ProjectStatus.COMPLETED.value, 1), else_=0)), 0),
            ).where(Project.organization_id == organization_id)
        )
    ).one()
    tasks = (
        await session.execute(
            select(func.count(Task.id), _done_count(), _overdue_count(now))
            .where(Task.organization_id == organization_id)
        )
    ).one()

    return ProjectStats(
        total_projects=projects[0],
        active_projects=projects[1],
        completed_projects=projects[2],
        total_tasks=tasks[0],
        completed_tasks=tasks[1],
        overdue_tasks=tasks[2],
    )

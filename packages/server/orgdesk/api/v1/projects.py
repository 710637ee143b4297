"""
Project endpoints.

Creation and listings are scoped through the tenant context (organization in
the body or query). Routes addressing one project derive the organization
from the project itself via the cross-entity access resolver.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orgdesk.authz.context import TenantContext, get_tenant_context
from orgdesk.authz.guards import require_permission
from orgdesk.authz.permissions import Capability
from orgdesk.core.auth import get_current_user_id
from orgdesk.core.config import get_settings
from orgdesk.core.database import get_session
from orgdesk.services import projects as project_service
from orgdesk.services import tasks as task_service
from orgdesk_shared.schemas.common import Page, ProjectStatus, TaskPriority, TaskStatus
from orgdesk_shared.schemas.projects import (
    ProjectCreate,
    ProjectDetail,
    ProjectRead,
    ProjectStats,
    ProjectSummary,
    ProjectUpdate,
)
from orgdesk_shared.schemas.tasks import TaskRead

router = APIRouter()
settings = get_settings()


# ---------------------------------------------------------------------------
# Organization-scoped
# ---------------------------------------------------------------------------


@router.post("", response_model=ProjectRead, status_code=201)
async def create_project(
    body: ProjectCreate,
    tenant: TenantContext = Depends(require_permission(Capability.CREATE_PROJECTS)),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.create_project(session, tenant, body)
    await session.commit()
    return ProjectRead.model_validate(project)


@router.get("", response_model=Page[ProjectSummary])
async def list_projects(
    status: Optional[ProjectStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    tenant: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    """List the organization's projects with task counters, newest first."""
    items, pagination = await project_service.list_projects(
        session, tenant.organization_id, status=status, page=page, limit=limit
    )
    return Page[ProjectSummary](data=items, pagination=pagination)


@router.get("/stats", response_model=ProjectStats)
async def get_project_stats(
    tenant: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    return await project_service.project_stats(session, tenant.organization_id)


# ---------------------------------------------------------------------------
# Single project
# ---------------------------------------------------------------------------


@router.get("/{project_id}", response_model=ProjectDetail)
async def get_project(
    project_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Project details with its most recent tasks."""
    return await project_service.get_project_detail(session, project_id, user_id)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.update_project(session, project_id, user_id, body)
    await session.commit()
    return ProjectRead.model_validate(project)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    await project_service.delete_project(session, project_id, user_id)
    await session.commit()


@router.get("/{project_id}/tasks", response_model=Page[TaskRead])
async def list_project_tasks(
    project_id: uuid.UUID,
    status: List[TaskStatus] = Query(default=[]),
    priority: List[TaskPriority] = Query(default=[]),
    assignee_id: List[uuid.UUID] = Query(default=[]),
    tags: List[str] = Query(default=[]),
    due_date_from: Optional[datetime] = None,
    due_date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=100),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Project tasks ordered by position, then newest first. List filters match any value."""
    items, pagination = await task_service.list_project_tasks(
        session,
        project_id,
        user_id,
        statuses=status,
        priorities=priority,
        assignee_ids=assignee_id,
        tags=tags,
        due_date_from=due_date_from,
        due_date_to=due_date_to,
        page=page,
        limit=limit,
    )
    return Page[TaskRead](data=items, pagination=pagination)

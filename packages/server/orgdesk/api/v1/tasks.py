"""
Task endpoints.

Tasks are addressed by id; the owning organization is derived through
Task -> Project -> Organization and the caller's membership there. Only
search is scoped by an explicit ``organization_id``.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orgdesk.authz.context import TenantContext, get_tenant_context
from orgdesk.core.auth import get_current_user_id
from orgdesk.core.config import get_settings
from orgdesk.core.database import get_session
from orgdesk.services import tasks as task_service
from orgdesk_shared.schemas.common import Page
from orgdesk_shared.schemas.tasks import (
    TaskCreate,
    TaskPositionUpdate,
    TaskRead,
    TaskUpdate,
)

router = APIRouter()
settings = get_settings()


@router.post("", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    task_in: TaskCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Create a task; without an explicit position it goes to the end of the project."""
    task = await task_service.create_task(session, task_in, user_id)
    await session.commit()
    return task_service.to_task_read(task)


@router.get("/search", response_model=Page[TaskRead])
async def search_tasks_endpoint(
    q: str = Query(..., min_length=1, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=100),
    tenant: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    """Title/description substring or exact tag match, newest first."""
    items, pagination = await task_service.search_tasks(
        session, tenant.organization_id, q, page=page, limit=limit
    )
    return Page[TaskRead](data=items, pagination=pagination)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    task = await task_service.get_task(session, task_id, user_id)
    return task_service.to_task_read(task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task_endpoint(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    task = await task_service.update_task(session, task_id, task_in, user_id)
    await session.commit()
    return task_service.to_task_read(task)


@router.patch("/{task_id}/position", response_model=TaskRead)
async def update_task_position_endpoint(
    task_id: uuid.UUID,
    body: TaskPositionUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Manual (drag and drop) reordering within the project."""
    task = await task_service.update_task_position(session, task_id, body.position, user_id)
    await session.commit()
    return task_service.to_task_read(task)


@router.delete("/{task_id}", status_code=204)
async def delete_task_endpoint(
    task_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    await task_service.delete_task(session, task_id, user_id)
    await session.commit()

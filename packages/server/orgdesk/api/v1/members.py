"""
Member API endpoints. The organization comes from the body on writes and
from the ``organization_id`` query parameter otherwise.

GET    /api/v1/members                  - List members (owners first)
GET    /api/v1/members/me               - Caller's own membership
GET    /api/v1/members/users/{user_id}  - Membership of another user in the same org
POST   /api/v1/members                  - Add a member (can_invite_members)
POST   /api/v1/members/invite           - Invite by email (can_invite_members)
PUT    /api/v1/members/{member_id}      - Change role/permissions (can_remove_members)
DELETE /api/v1/members/{member_id}      - Remove a member (can_remove_members)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orgdesk.authz.context import TenantContext, get_tenant_context
from orgdesk.authz.guards import require_co_membership, require_permission
from orgdesk.authz.membership import resolve_membership
from orgdesk.authz.permissions import Capability
from orgdesk.core.database import get_session
from orgdesk.services import members as member_service
from orgdesk.services.directory import UserDirectory, get_user_directory
from orgdesk_shared.schemas.common import Page
from orgdesk_shared.schemas.members import (
    InvitationAccepted,
    MemberCreate,
    MemberInvite,
    MemberRead,
    MemberUpdate,
)

router = APIRouter()


async def _read(member, directory: UserDirectory) -> MemberRead:
    return member_service.to_member_read(member, await directory.lookup(member.user_id))


@router.get("", response_model=Page[MemberRead])
async def list_members(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    tenant: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
    directory: UserDirectory = Depends(get_user_directory),
):
    items, pagination = await member_service.list_members(
        session, tenant.organization_id, directory, page=page, limit=limit
    )
    return Page[MemberRead](data=items, pagination=pagination)


@router.get("/me", response_model=MemberRead)
async def get_my_membership(
    tenant: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
    directory: UserDirectory = Depends(get_user_directory),
):
    member = await member_service.get_my_membership(session, tenant)
    return await _read(member, directory)


@router.get("/users/{user_id}", response_model=MemberRead)
async def get_member_by_user(
    user_id: uuid.UUID,
    tenant: TenantContext = Depends(require_co_membership),
    session: AsyncSession = Depends(get_session),
    directory: UserDirectory = Depends(get_user_directory),
):
    member = await resolve_membership(session, tenant.organization_id, user_id)
    return await _read(member, directory)


@router.post("", response_model=MemberRead, status_code=201)
async def add_member(
    body: MemberCreate,
    tenant: TenantContext = Depends(require_permission(Capability.INVITE_MEMBERS)),
    session: AsyncSession = Depends(get_session),
    directory: UserDirectory = Depends(get_user_directory),
):
    member = await member_service.add_member(session, tenant, body)
    await session.commit()
    return await _read(member, directory)


@router.post("/invite", response_model=InvitationAccepted, status_code=202)
async def invite_member(
    body: MemberInvite,
    tenant: TenantContext = Depends(require_permission(Capability.INVITE_MEMBERS)),
    session: AsyncSession = Depends(get_session),
):
    return await member_service.invite_member(session, tenant, body)


@router.put("/{member_id}", response_model=MemberRead)
async def update_member(
    member_id: uuid.UUID,
    body: MemberUpdate,
    tenant: TenantContext = Depends(require_permission(Capability.REMOVE_MEMBERS)),
    session: AsyncSession = Depends(get_session),
    directory: UserDirectory = Depends(get_user_directory),
):
    member = await member_service.update_member(session, tenant, member_id, body)
    await session.commit()
    return await _read(member, directory)


@router.delete("/{member_id}", status_code=204)
async def remove_member(
    member_id: uuid.UUID,
    tenant: TenantContext = Depends(require_permission(Capability.REMOVE_MEMBERS)),
    session: AsyncSession = Depends(get_session),
):
    await member_service.remove_member(session, tenant, member_id)
    await session.commit()

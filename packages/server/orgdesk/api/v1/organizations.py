"""
Organization API endpoints.

GET    /api/v1/organizations                    - List orgs for authenticated user
POST   /api/v1/organizations                    - Create a new org (caller becomes owner)
GET    /api/v1/organizations/{organization_id}  - Get org details and settings
PATCH  /api/v1/organizations/{organization_id}  - Update name/description/settings (owner, admin)
DELETE /api/v1/organizations/{organization_id}  - Delete org and everything in it (owner)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orgdesk.authz.context import TenantContext, get_tenant_context
from orgdesk.authz.guards import require_owner, require_role
from orgdesk.core.auth import get_current_user_id
from orgdesk.core.database import get_session
from orgdesk.models.organization import Organization
from orgdesk.services import organizations as org_service
from orgdesk_shared.schemas.common import MemberRole
from orgdesk_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgListResponse,
    OrgResponse,
    OrgSettings,
    OrgUpdateRequest,
)

router = APIRouter()


def _org_response(org: Organization) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        description=org.description,
        owner_id=org.owner_id,
        settings=OrgSettings.model_validate(org.settings),
        created_at=org.created_at,
        updated_at=org.updated_at,
    )


@router.get("", response_model=OrgListResponse)
async def list_orgs(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = await org_service.list_user_orgs(user_id, session)
    return OrgListResponse(data=items)


@router.post("", response_model=OrgResponse, status_code=201)
async def create_org(
    body: OrgCreateRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(body, user_id, session)
    await session.commit()
    return _org_response(org)


@router.get("/{organization_id}", response_model=OrgResponse)
async def get_org(
    tenant: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    """Get org details including settings."""
    org = await org_service.get_org(tenant.organization_id, session)
    return _org_response(org)


@router.patch("/{organization_id}", response_model=OrgResponse)
async def update_org(
    body: OrgUpdateRequest,
    tenant: TenantContext = Depends(require_role(MemberRole.OWNER, MemberRole.ADMIN)),
    session: AsyncSession = Depends(get_session),
):
    """Update org name, description or settings. Settings are deep-merged."""
    org = await org_service.get_org(tenant.organization_id, session)
    org = await org_service.update_org(org, body, session)
    await session.commit()
    return _org_response(org)


@router.delete("/{organization_id}", status_code=204)
async def delete_org(
    tenant: TenantContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    """Delete the organization with its projects, tasks and memberships (owner only)."""
    org = await org_service.get_org(tenant.organization_id, session)
    await org_service.delete_org(org, session)
    await session.commit()

"""
Organization service - business logic for org CRUD.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgdesk.authz.permissions import default_permissions
from orgdesk.core.errors import NotFoundOrDenied, SlugConflict
from orgdesk.models.member import Member
from orgdesk.models.organization import Organization
from orgdesk.models.project import Project
from orgdesk.models.task import Task
from orgdesk_shared.schemas.common import MemberRole
from orgdesk_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgSettings,
    OrgUpdateRequest,
)

log = structlog.get_logger()


def deep_merge(base: dict, patch: dict) -> dict:
    """JSON Merge Patch style deep merge."""
    result = base.copy()
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


async def list_user_orgs(
    user_id: uuid.UUID, session: AsyncSession
) -> list[dict]:
    """List all orgs a user belongs to, with their role."""
    result = await session.execute(
        select(Organization, Member.role)
        .join(Member, Member.organization_id == Organization.id)
        .where(Member.user_id == user_id)
        .order_by(Organization.name)
    )
    return [
        {
            "id": org.id,
            "name": org.name,
            "slug": org.slug,
            "role": role,
        }
        for org, role in result.all()
    ]


async def create_org(
    req: OrgCreateRequest,
    creator_id: uuid.UUID,
    session: AsyncSession,
) -> Organization:
    """Create an org and make the creator its owner with every permission."""
    existing = await session.execute(
        select(Organization.id).where(Organization.slug == req.slug)
    )
    if existing.scalar_one_or_none():
        raise SlugConflict()

    settings = deep_merge(OrgSettings().model_dump(), req.settings or {})
    org = Organization(
        name=req.name,
        slug=req.slug,
        description=req.description,
        owner_id=creator_id,
        settings=OrgSettings.model_validate(settings).model_dump(),
    )
    session.add(org)
    try:
        await session.flush()
    except IntegrityError:
        # Lost a race against a concurrent create with the same slug
        raise SlugConflict()

    session.add(
        Member(
            organization_id=org.id,
            user_id=creator_id,
            role=MemberRole.OWNER.value,
            permissions=default_permissions(MemberRole.OWNER),
        )
    )
    await session.flush()

    log.info("org.created", org_id=str(org.id), slug=req.slug, creator=str(creator_id))
    return org


async def get_org(org_id: uuid.UUID, session: AsyncSession) -> Organization:
    org = await session.get(Organization, org_id)
    if not org:
        raise NotFoundOrDenied("Organization not found")
    return org


async def update_org(
    org: Organization,
    req: OrgUpdateRequest,
    session: AsyncSession,
) -> Organization:
    """Update org name, description and/or settings (deep merge)."""
    if req.name is not None:
        org.name = req.name
    if req.description is not None:
        org.description = req.description

    if req.settings is not None:
        merged = deep_merge(org.settings, req.settings)
        org.settings = OrgSettings.model_validate(merged).model_dump()  # raises ValidationError if invalid

    org.updated_at = datetime.now(timezone.utc)
    session.add(org)
    await session.flush()

    log.info("org.updated", org_id=str(org.id), slug=org.slug)
    return org


async def delete_org(org: Organization, session: AsyncSession) -> None:
    """Delete an org together with its tasks, projects and memberships."""
    await session.execute(delete(Task).where(Task.organization_id == org.id))
    await session.execute(delete(Project).where(Project.organization_id == org.id))
    await session.execute(delete(Member).where(Member.organization_id == org.id))
    await session.delete(org)
    await session.flush()

    log.info("org.deleted", org_id=str(org.id), slug=org.slug)

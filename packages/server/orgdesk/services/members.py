"""
Member service: listing, adding, inviting, updating and removing members.

Every mutation locks the organization row ``FOR UPDATE`` before reading the
caller's and the target's memberships, so owner counts and role checks
cannot interleave with another membership change in the same organization.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgdesk.authz.context import TenantContext
from orgdesk.authz.membership import find_membership, resolve_membership
from orgdesk.authz.permissions import Capability, merge_permissions, normalize
from orgdesk.authz.rules import (
    ensure_can,
    ensure_can_add_member,
    ensure_can_invite,
    ensure_can_remove_member,
    ensure_can_update_member,
)
from orgdesk.core.errors import DuplicateMembership, MemberNotFound, NotFoundOrDenied
from orgdesk.models.member import Member
from orgdesk.models.organization import Organization
from orgdesk.services.directory import DirectoryUser, UserDirectory, lookup_many
from orgdesk_shared.schemas.common import MemberRole, Pagination
from orgdesk_shared.schemas.members import (
    InvitationAccepted,
    MemberCreate,
    MemberInvite,
    MemberRead,
    MemberUpdate,
)

log = structlog.get_logger()

# Owners first, then admins, members, viewers
ROLE_SORT = case(
    (Member.role == MemberRole.OWNER.value, 0),
    (Member.role == MemberRole.ADMIN.value, 1),
    (Member.role == MemberRole.MEMBER.value, 2),
    else_=3,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def lock_organization_stmt(organization_id: uuid.UUID):
    return select(Organization).where(Organization.id == organization_id).with_for_update()


async def _lock_organization(session: AsyncSession, organization_id: uuid.UUID) -> Organization:
    result = await session.execute(lock_organization_stmt(organization_id))
    org = result.scalar_one_or_none()
    if org is None:
        raise NotFoundOrDenied("Organization not found")
    return org


async def count_owners(session: AsyncSession, organization_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Member)
        .where(
            Member.organization_id == organization_id,
            Member.role == MemberRole.OWNER.value,
        )
    )
    return result.scalar_one()


async def _get_target(
    session: AsyncSession, organization_id: uuid.UUID, member_id: uuid.UUID
) -> Member:
    result = await session.execute(
        select(Member)
        .where(Member.id == member_id, Member.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    target = result.scalar_one_or_none()
    if target is None:
        raise MemberNotFound()
    return target


def to_member_read(member: Member, user: Optional[DirectoryUser] = None) -> MemberRead:
    return MemberRead(
        id=member.id,
        organization_id=member.organization_id,
        user_id=member.user_id,
        role=member.role,
        permissions=normalize(member.permissions),
        joined_at=member.joined_at,
        created_at=member.created_at,
        updated_at=member.updated_at,
        user_email=user.email if user else None,
        user_name=user.name if user else None,
        user_avatar=user.avatar_url if user else None,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_members(
    session: AsyncSession,
    organization_id: uuid.UUID,
    directory: UserDirectory,
    *,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[MemberRead], Pagination]:
    total = (
        await session.execute(
            select(func.count())
            .select_from(Member)
            .where(Member.organization_id == organization_id)
        )
    ).scalar_one()

    result = await session.execute(
        select(Member)
        .where(Member.organization_id == organization_id)
        .order_by(ROLE_SORT, Member.joined_at)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    members = list(result.scalars().all())
    users = await lookup_many(directory, (m.user_id for m in members))
    return (
        [to_member_read(m, users.get(m.user_id)) for m in members],
        Pagination.build(page, limit, total),
    )


async def get_my_membership(session: AsyncSession, tenant: TenantContext) -> Member:
    return await resolve_membership(session, tenant.organization_id, tenant.user_id)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def add_member(
    session: AsyncSession,
    tenant: TenantContext,
    req: MemberCreate,
) -> Member:
    await _lock_organization(session, tenant.organization_id)
    caller = await resolve_membership(session, tenant.organization_id, tenant.user_id)
    existing = await find_membership(session, tenant.organization_id, req.user_id)
    ensure_can_add_member(caller, req.role, existing)

    member = Member(
        organization_id=tenant.organization_id,
        user_id=req.user_id,
        role=req.role.value,
        permissions=merge_permissions(req.role, req.permissions),
    )
    session.add(member)
    try:
        await session.flush()
    except IntegrityError:
        raise DuplicateMembership()

    log.info(
        "member.added",
        member_id=str(member.id),
        target_user_id=str(req.user_id),
        role=member.role,
    )
    return member


async def invite_member(
    session: AsyncSession,
    tenant: TenantContext,
    req: MemberInvite,
) -> InvitationAccepted:
    """Record intent to invite by email. Delivery is not implemented; the invite is logged."""
    caller = await resolve_membership(session, tenant.organization_id, tenant.user_id)
    ensure_can_invite(caller, req.role)

    log.info("member.invited", email=req.email, role=req.role.value)
    return InvitationAccepted(
        organization_id=tenant.organization_id,
        email=req.email,
        role=req.role,
        invited_by=tenant.user_id,
    )


async def update_member(
    session: AsyncSession,
    tenant: TenantContext,
    member_id: uuid.UUID,
    req: MemberUpdate,
) -> Member:
    await _lock_organization(session, tenant.organization_id)
    caller = await resolve_membership(session, tenant.organization_id, tenant.user_id)
    ensure_can(caller, Capability.REMOVE_MEMBERS)
    target = await _get_target(session, tenant.organization_id, member_id)
    owner_count = await count_owners(session, tenant.organization_id)
    ensure_can_update_member(caller, target, req.role, owner_count)

    role_changed = req.role is not None and req.role.value != target.role
    if role_changed:
        target.role = req.role.value
    if role_changed or req.permissions is not None:
        # A role change without explicit flags resets them to the new role's defaults
        base = None if role_changed else target.permissions
        target.permissions = merge_permissions(target.role, req.permissions, base=base)

    session.add(target)
    await session.flush()

    log.info("member.updated", member_id=str(target.id), role=target.role)
    return target


async def remove_member(
    session: AsyncSession,
    tenant: TenantContext,
    member_id: uuid.UUID,
) -> None:
    await _lock_organization(session, tenant.organization_id)
    caller = await resolve_membership(session, tenant.organization_id, tenant.user_id)
    ensure_can(caller, Capability.REMOVE_MEMBERS)
    target = await _get_target(session, tenant.organization_id, member_id)
    owner_count = await count_owners(session, tenant.organization_id)
    ensure_can_remove_member(caller, target, owner_count)

    await session.delete(target)
    await session.flush()

    log.info("member.removed", member_id=str(member_id), target_user_id=str(target.user_id))

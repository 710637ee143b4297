"""
Membership resolver: the single gate for "is this user in this organization".

Reads always go to the database and overwrite whatever the session's
identity map holds, so a role or flag changed by a concurrent request is
visible to the very next check.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgdesk.core.errors import AccessDenied
from orgdesk.models.member import Member


async def find_membership(
    session: AsyncSession,
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Optional[Member]:
    result = await session.execute(
        select(Member)
        .where(Member.organization_id == organization_id, Member.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def resolve_membership(
    session: AsyncSession,
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Member:
    """Return the caller's membership or raise AccessDenied."""
    member = await find_membership(session, organization_id, user_id)
    if member is None:
        raise AccessDenied()
    return member

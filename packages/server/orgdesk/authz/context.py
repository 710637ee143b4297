"""
Tenant context: which organization a request targets and who the caller is there.

The organization id is looked up in a fixed order: path parameter, then the
JSON body, then the query string. The first non-empty value wins.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orgdesk.authz.membership import resolve_membership
from orgdesk.authz.permissions import granted
from orgdesk.core.auth import get_current_user_id
from orgdesk.core.database import get_session
from orgdesk.core.errors import AccessDenied, MissingOrganization
from orgdesk.core.logging import bind_tenant
from orgdesk.models.member import Member
from orgdesk_shared.schemas.common import MemberRole

log = structlog.get_logger()

ORGANIZATION_KEY = "organization_id"


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Immutable tenant context carried through each request."""

    organization_id: uuid.UUID
    user_id: uuid.UUID
    role: MemberRole
    permissions: tuple[str, ...]
    member: Optional[Member] = field(default=None, compare=False, repr=False)

    def has(self, permission: str) -> bool:
        return permission in self.permissions


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def extract_organization_id(
    path_params: Optional[Mapping[str, Any]] = None,
    body: Optional[Mapping[str, Any]] = None,
    query_params: Optional[Mapping[str, Any]] = None,
) -> Optional[str]:
    """Locate the target organization id; None if no source carries one."""
    for source in (path_params, body, query_params):
        if source is None:
            continue
        value = source.get(ORGANIZATION_KEY)
        if _present(value):
            return str(value).strip()
    return None


def parse_organization_id(raw: str) -> uuid.UUID:
    # A malformed id cannot name an organization the caller belongs to
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise AccessDenied()


async def build_tenant_context(
    session: AsyncSession,
    user_id: uuid.UUID,
    raw_organization_id: Optional[str],
) -> TenantContext:
    if not raw_organization_id:
        raise MissingOrganization()

    organization_id = parse_organization_id(raw_organization_id)
    member = await resolve_membership(session, organization_id, user_id)
    return TenantContext(
        organization_id=organization_id,
        user_id=user_id,
        role=MemberRole(member.role),
        permissions=granted(member.permissions),
        member=member,
    )


async def read_json_body(request: Request) -> Optional[Mapping[str, Any]]:
    if request.method in ("GET", "HEAD", "OPTIONS"):
        return None
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


async def get_tenant_context(
    request: Request,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> TenantContext:
    """FastAPI dependency: build the tenant context and attach it to the request."""
    raw = extract_organization_id(
        request.path_params,
        await read_json_body(request),
        request.query_params,
    )
    try:
        tenant = await build_tenant_context(session, user_id, raw)
    except AccessDenied:
        log.info("tenant.access_denied", organization_id=raw, user_id=str(user_id))
        raise

    request.state.tenant = tenant
    bind_tenant(tenant.organization_id, tenant.user_id)
    return tenant

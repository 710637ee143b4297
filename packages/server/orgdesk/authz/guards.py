"""
Authorization guards.

Each guard is a plain predicate over a TenantContext (``check_*``) plus a
FastAPI dependency wrapping it (``require_*``). Routes compose them after
``get_tenant_context``; service rules run afterwards.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orgdesk.authz.context import TenantContext, read_json_body, get_tenant_context
from orgdesk.authz.membership import find_membership, resolve_membership
from orgdesk.authz.permissions import Capability, has_capability
from orgdesk.core.database import get_session
from orgdesk.core.errors import Forbidden, TargetNotMember
from orgdesk_shared.schemas.common import MemberRole

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def check_role(tenant: TenantContext, allowed: set[MemberRole] | frozenset[MemberRole]) -> None:
    if tenant.role not in allowed:
        raise Forbidden("Insufficient role")


def check_owner(tenant: TenantContext) -> None:
    if tenant.role is not MemberRole.OWNER:
        raise Forbidden("Organization owner access required")


async def check_permission(
    session: AsyncSession,
    tenant: TenantContext,
    capability: Capability,
) -> None:
    """Re-read the caller's membership and require ``capability``.

    The context may be stale by now; a revoked flag or demotion committed by
    another request must take effect here.
    """
    member = await resolve_membership(session, tenant.organization_id, tenant.user_id)
    if not has_capability(member.role, member.permissions, capability):
        log.info("authz.permission_denied", capability=capability.value, role=member.role)
        raise Forbidden(f"Missing permission: {capability.value}")


async def check_co_membership(
    session: AsyncSession,
    organization_id: uuid.UUID,
    target_user_id: Optional[uuid.UUID],
) -> None:
    """Require ``target_user_id`` to belong to the organization. None passes."""
    if target_user_id is None:
        return
    member = await find_membership(session, organization_id, target_user_id)
    if member is None:
        raise TargetNotMember()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def require_role(*allowed: MemberRole):
    allowed_set = frozenset(allowed)

    async def dependency(tenant: TenantContext = Depends(get_tenant_context)) -> TenantContext:
        check_role(tenant, allowed_set)
        return tenant

    return dependency


def require_permission(capability: Capability):
    async def dependency(
        tenant: TenantContext = Depends(get_tenant_context),
        session: AsyncSession = Depends(get_session),
    ) -> TenantContext:
        await check_permission(session, tenant, capability)
        return tenant

    return dependency


async def require_owner(tenant: TenantContext = Depends(get_tenant_context)) -> TenantContext:
    check_owner(tenant)
    return tenant


def _target_user_id(
    path_params: Mapping[str, Any],
    body: Optional[Mapping[str, Any]],
) -> Optional[uuid.UUID]:
    raw = path_params.get("user_id") or (body or {}).get("user_id")
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise TargetNotMember()


async def require_co_membership(
    request: Request,
    tenant: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> TenantContext:
    """Target user comes from the ``user_id`` path parameter or body field."""
    target = _target_user_id(request.path_params, await read_json_body(request))
    await check_co_membership(session, tenant.organization_id, target)
    return tenant

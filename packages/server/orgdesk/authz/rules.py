"""
Membership rules applied after the guards, right before a mutation.

These are pure checks: the member service does the lookups and locking and
passes in what it found.
"""

from __future__ import annotations

from typing import Optional

from orgdesk.authz.permissions import Capability, has_capability
from orgdesk.authz.roles import is_higher_role
from orgdesk.core.errors import (
    DuplicateMembership,
    Forbidden,
    LastOwnerProtected,
    RoleEscalationBlocked,
    SelfModificationBlocked,
)
from orgdesk.models.member import Member
from orgdesk_shared.schemas.common import MemberRole


def ensure_can(member: Member, capability: Capability) -> None:
    if not has_capability(member.role, member.permissions, capability):
        raise Forbidden(f"Missing permission: {capability.value}")


def ensure_role_assignable(caller_role: MemberRole | str, requested_role: MemberRole | str) -> None:
    if is_higher_role(requested_role, caller_role):
        raise RoleEscalationBlocked()


def ensure_not_self(caller: Member, target: Member) -> None:
    if caller.user_id == target.user_id:
        raise SelfModificationBlocked()


def ensure_not_last_owner(owner_count: int) -> None:
    if owner_count <= 1:
        raise LastOwnerProtected()


# ---------------------------------------------------------------------------
# Per-operation rule sets
# ---------------------------------------------------------------------------

def ensure_can_add_member(
    caller: Member,
    requested_role: MemberRole | str,
    existing: Optional[Member],
) -> None:
    ensure_can(caller, Capability.INVITE_MEMBERS)
    if existing is not None:
        raise DuplicateMembership()
    ensure_role_assignable(caller.role, requested_role)


def ensure_can_invite(caller: Member, requested_role: MemberRole | str) -> None:
    ensure_can(caller, Capability.INVITE_MEMBERS)
    ensure_role_assignable(caller.role, requested_role)


def ensure_can_update_member(
    caller: Member,
    target: Member,
    new_role: Optional[MemberRole | str],
    owner_count: int,
) -> None:
    """Updating a member is gated by the removal flag, not a flag of its own."""
    ensure_not_self(caller, target)
    if new_role is None:
        return
    ensure_role_assignable(caller.role, new_role)
    if MemberRole(target.role) is MemberRole.OWNER and MemberRole(new_role) is not MemberRole.OWNER:
        ensure_not_last_owner(owner_count)


def ensure_can_remove_member(caller: Member, target: Member, owner_count: int) -> None:
    ensure_not_self(caller, target)
    if is_higher_role(target.role, caller.role):
        raise RoleEscalationBlocked("Cannot remove members with higher role than your own")
    if MemberRole(target.role) is MemberRole.OWNER:
        ensure_not_last_owner(owner_count)

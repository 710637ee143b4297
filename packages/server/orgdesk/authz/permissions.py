"""
Capability flags and how roles interact with them.

Owners and admins implicitly hold every capability. Everyone else holds
exactly the flags stored on their membership.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional

from orgdesk_shared.schemas.common import MemberRole
from orgdesk_shared.schemas.members import MemberPermissionsPatch


class Capability(str, Enum):
    CREATE_PROJECTS = "can_create_projects"
    EDIT_PROJECTS = "can_edit_projects"
    DELETE_PROJECTS = "can_delete_projects"
    INVITE_MEMBERS = "can_invite_members"
    REMOVE_MEMBERS = "can_remove_members"
    MANAGE_TASKS = "can_manage_tasks"


PRIVILEGED_ROLES = frozenset({MemberRole.OWNER, MemberRole.ADMIN})

ALL_GRANTED = {cap.value: True for cap in Capability}

# Flags stored on a new membership when the caller does not supply any
ROLE_DEFAULT_PERMISSIONS: dict[MemberRole, dict[str, bool]] = {
    MemberRole.OWNER: dict(ALL_GRANTED),
    MemberRole.ADMIN: dict(ALL_GRANTED),
    MemberRole.MEMBER: {**{cap.value: False for cap in Capability}, Capability.MANAGE_TASKS.value: True},
    MemberRole.VIEWER: {cap.value: False for cap in Capability},
}


def normalize(permissions: Optional[Mapping[str, object]]) -> dict[str, bool]:
    """Coerce a stored permission bag into the closed flag record.

    Keys outside the capability set are dropped; missing keys are False.
    """
    permissions = permissions or {}
    return {cap.value: permissions.get(cap.value) is True for cap in Capability}


def default_permissions(role: MemberRole | str) -> dict[str, bool]:
    return dict(ROLE_DEFAULT_PERMISSIONS[MemberRole(role)])


def merge_permissions(
    role: MemberRole | str,
    patch: Optional[MemberPermissionsPatch | Mapping] = None,
    base: Optional[Mapping[str, object]] = None,
) -> dict[str, bool]:
    """Apply a partial flag update over ``base`` (or the role defaults)."""
    result = normalize(base) if base is not None else default_permissions(role)
    if patch is None:
        return result
    if hasattr(patch, "model_dump"):
        patch = patch.model_dump(exclude_none=True)
    for key, value in patch.items():
        result[Capability(key).value] = bool(value)
    return result


def is_privileged(role: MemberRole | str) -> bool:
    return MemberRole(role) in PRIVILEGED_ROLES


def has_capability(
    role: MemberRole | str,
    permissions: Optional[Mapping[str, object]],
    capability: Capability,
) -> bool:
    if is_privileged(role):
        return True
    return normalize(permissions)[capability.value]


def granted(permissions: Optional[Mapping[str, object]]) -> tuple[str, ...]:
    """Names of the flags whose value is true, in capability order."""
    flags = normalize(permissions)
    return tuple(cap.value for cap in Capability if flags[cap.value])

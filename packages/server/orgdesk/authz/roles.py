"""Role hierarchy: owner > admin > member > viewer."""

from __future__ import annotations

from enum import Enum

from orgdesk_shared.schemas.common import ROLE_ORDER, MemberRole


class RoleComparison(str, Enum):
    HIGHER = "higher"
    EQUAL = "equal"
    LOWER = "lower"


def rank(role: MemberRole | str) -> int:
    return ROLE_ORDER.index(MemberRole(role))


def compare(a: MemberRole | str, b: MemberRole | str) -> RoleComparison:
    """Compare role ``a`` against role ``b``."""
    diff = rank(a) - rank(b)
    if diff > 0:
        return RoleComparison.HIGHER
    if diff < 0:
        return RoleComparison.LOWER
    return RoleComparison.EQUAL


def is_higher_role(a: MemberRole | str, b: MemberRole | str) -> bool:
    return compare(a, b) is RoleComparison.HIGHER

"""
Error taxonomy for tenancy and authorization failures.

Guards, rules and services raise these; they never build responses. The
application registers one handler (see ``orgdesk.main``) that renders every
``OrgDeskError`` as::

    {"error": {"code": "<CODE>", "message": "<human text>", "status": <int>}}
"""

from __future__ import annotations


class OrgDeskError(Exception):
    """Base class for client-visible failures."""

    code: str = "ERROR"
    status_code: int = 400
    message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "status": self.status_code,
            }
        }


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class AuthenticationRequired(OrgDeskError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401
    message = "Authentication required"


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------

class MissingOrganization(OrgDeskError):
    code = "MISSING_ORGANIZATION"
    status_code = 400
    message = "Organization ID is required"


class Forbidden(OrgDeskError):
    code = "FORBIDDEN"
    status_code = 403
    message = "Insufficient permissions"


class AccessDenied(Forbidden):
    """The caller is not a member of the target organization."""

    code = "ACCESS_DENIED"
    message = "Access denied to organization"


class NotFoundOrDenied(OrgDeskError):
    """The entity does not exist, or exists somewhere the caller cannot see."""

    code = "NOT_FOUND_OR_DENIED"
    status_code = 404
    message = "Resource not found or access denied"


class TargetNotMember(OrgDeskError):
    code = "TARGET_NOT_MEMBER"
    status_code = 404
    message = "Target user is not a member of this organization"


class MemberNotFound(OrgDeskError):
    code = "MEMBER_NOT_FOUND"
    status_code = 404
    message = "Member not found"


class OrganizationMismatch(OrgDeskError):
    code = "ORGANIZATION_MISMATCH"
    status_code = 422
    message = "Organization does not match the parent project"


# ---------------------------------------------------------------------------
# Membership rules
# ---------------------------------------------------------------------------

class RoleEscalationBlocked(OrgDeskError):
    code = "ROLE_ESCALATION_BLOCKED"
    status_code = 403
    message = "Cannot assign a role higher than your own"


class LastOwnerProtected(OrgDeskError):
    code = "LAST_OWNER_PROTECTED"
    status_code = 409
    message = "Cannot remove the last owner from organization"


class SelfModificationBlocked(OrgDeskError):
    code = "SELF_MODIFICATION_BLOCKED"
    status_code = 400
    message = "Cannot modify your own membership"


class DuplicateMembership(OrgDeskError):
    code = "DUPLICATE_MEMBERSHIP"
    status_code = 409
    message = "User is already a member of this organization"


class SlugConflict(OrgDeskError):
    code = "SLUG_CONFLICT"
    status_code = 409
    message = "Organization slug already taken"

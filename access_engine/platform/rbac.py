"""
Role helpers for school memberships.

Membership roles: OWNER | ADMIN | INSTRUCTOR | TA | MODERATOR | STUDENT.

CRITICAL SECURITY REQUIREMENTS:
- Role checks MUST happen server-side; UI gating is UX only
- All role classification MUST be centralized in this module
"""

import logging
from enum import Enum
from typing import Any, Optional

from fastapi import status

from access_engine.config.settings import get_engine_settings
from access_engine.errors import AccessEngineError

logger = logging.getLogger(__name__)


class MembershipRole(str, Enum):
    """Role of a user within one school."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    INSTRUCTOR = "INSTRUCTOR"
    TA = "TA"
    MODERATOR = "MODERATOR"
    STUDENT = "STUDENT"


class NormalizedRole(str, Enum):
    """Simplified role used for navigation and audience labels."""
    SCHOOL_OWNER = "SCHOOL_OWNER"
    SCHOOL_ADMIN = "SCHOOL_ADMIN"
    RAV = "RAV"
    STUDENT = "STUDENT"
    GUEST = "GUEST"


# Roles that always resolve to FULL access on school content.
STAFF_ROLES = frozenset({
    MembershipRole.OWNER,
    MembershipRole.ADMIN,
    MembershipRole.INSTRUCTOR,
    MembershipRole.TA,
})

_ROLE_MAP = {
    MembershipRole.OWNER: NormalizedRole.SCHOOL_OWNER,
    MembershipRole.ADMIN: NormalizedRole.SCHOOL_ADMIN,
    MembershipRole.MODERATOR: NormalizedRole.SCHOOL_ADMIN,
    MembershipRole.INSTRUCTOR: NormalizedRole.RAV,
    MembershipRole.TA: NormalizedRole.RAV,
    MembershipRole.STUDENT: NormalizedRole.STUDENT,
}


class RoleRequiredError(AccessEngineError):
    """Raised when a caller lacks the role an operation requires."""

    error_code = "role_required"
    http_status = status.HTTP_403_FORBIDDEN


def parse_role(role: Any) -> Optional[MembershipRole]:
    """Parse a membership role case-insensitively. None if absent or unknown."""
    if isinstance(role, MembershipRole):
        return role
    if not role:
        return None
    try:
        return MembershipRole(str(role).strip().upper())
    except ValueError:
        return None


def normalize_role(role: Any) -> NormalizedRole:
    """Map a membership role to its simplified role. Unknown roles are STUDENT."""
    if not role:
        return NormalizedRole.GUEST
    parsed = parse_role(role)
    if parsed is None:
        return NormalizedRole.STUDENT
    return _ROLE_MAP[parsed]


def is_staff_role(role: Any) -> bool:
    return parse_role(role) in STAFF_ROLES


def is_school_admin(role: Any) -> bool:
    return parse_role(role) in (
        MembershipRole.OWNER,
        MembershipRole.ADMIN,
        MembershipRole.MODERATOR,
    )


def is_teacher(role: Any) -> bool:
    """School admins, instructors and TAs can teach and preview content."""
    return is_school_admin(role) or parse_role(role) in (
        MembershipRole.INSTRUCTOR,
        MembershipRole.TA,
    )


def is_global_admin(user_email: Optional[str]) -> bool:
    if not user_email:
        return False
    return user_email.strip().lower() in get_engine_settings().global_admins


def get_audience(role: Any) -> str:
    """Audience label: admin | teacher | student."""
    if is_school_admin(role):
        return "admin"
    if is_teacher(role):
        return "teacher"
    return "student"


def require_teacher(role: Any, page: str = "this page") -> None:
    if not is_teacher(role):
        logger.warning("Teacher role required", extra={"role": role, "page": page})
        raise RoleRequiredError(f"Teacher access required for {page}")


def require_school_admin(role: Any, page: str = "this page") -> None:
    if not is_school_admin(role):
        logger.warning("School admin role required", extra={"role": role, "page": page})
        raise RoleRequiredError(f"School admin access required for {page}")


def require_global_admin(user_email: Optional[str], page: str = "this page") -> None:
    if not is_global_admin(user_email):
        logger.warning("Global admin required", extra={"page": page})
        raise RoleRequiredError(f"Global admin access required for {page}")

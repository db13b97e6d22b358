"""
Explicit school context.

Every call into the access engine receives the school id explicitly. There is
no implicit "active school" global: the HTTP layer builds a SchoolContext per
request and threads it through.

The membership role is never taken from the caller: load_school_context()
reads it from the SchoolMembership collection of that school.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from access_engine.errors import InputValidationError
from access_engine.platform.rbac import (
    MembershipRole,
    parse_role,
    is_staff_role,
    is_teacher,
)
from access_engine.utils.records import get_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchoolContext:
    """
    Immutable per-request school context.

    school_id is mandatory; user_email and role are absent for anonymous
    visitors.
    """
    school_id: str
    user_email: Optional[str] = None
    role: Optional[MembershipRole] = None

    def __post_init__(self):
        if not self.school_id or not str(self.school_id).strip():
            raise InputValidationError("school_id", "school_id cannot be empty")

    @property
    def is_teacher(self) -> bool:
        return is_teacher(self.role)

    @property
    def is_staff(self) -> bool:
        return is_staff_role(self.role)

    def __repr__(self) -> str:
        return f"SchoolContext(school_id={self.school_id}, role={self.role})"


async def load_school_context(
    store,
    school_id: Optional[str],
    user_email: Optional[str] = None,
) -> SchoolContext:
    """
    Build the school context for a caller.

    The role always comes from the caller's SchoolMembership in the school:
    - anonymous caller → no role
    - signed-in caller without a membership → STUDENT
    - membership with an unrecognised role → STUDENT

    Raises InputValidationError when school_id is missing. Store errors
    propagate.
    """
    if not school_id or not str(school_id).strip():
        logger.warning("Request without school context")
        raise InputValidationError("school_id", "school_id is required")

    school_id = str(school_id).strip()
    email = (user_email or "").strip().lower() or None
    if email is None:
        return SchoolContext(school_id=school_id)

    memberships = await store.filter(
        "SchoolMembership", school_id, {"user_email": email}, limit=1,
    )
    if not memberships:
        return SchoolContext(school_id=school_id, user_email=email, role=MembershipRole.STUDENT)

    raw_role = get_field(memberships[0], "role")
    role = parse_role(raw_role)
    if role is None:
        logger.warning(
            "Unknown membership role, treating as STUDENT",
            extra={"school_id": school_id, "role": raw_role},
        )
        role = MembershipRole.STUDENT
    return SchoolContext(school_id=school_id, user_email=email, role=role)

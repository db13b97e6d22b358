"""
Access resolver.

Combines course/lesson/quiz metadata, membership role, entitlements, legacy
subscription tier and drip state into ONE AccessLevel.

Rules, in strict order (first match wins):
1. Target missing for the school, or its parent course belongs to another
   school → NOT_FOUND
2. Staff role (OWNER, ADMIN, INSTRUCTOR, TA) or teacher → FULL
3. Modern path (course.access_level set): FREE → FULL; otherwise FULL iff an
   active ALL_COURSES grant or COURSE grant for exactly this course.
   A quiz without a course is standalone → FULL.
4. Legacy path (course.access_level unset): FULL iff
   subscription tier >= course tier (free < premium < elite)
5. Previews allowed by policy and item previewable → PREVIEW, else LOCKED
6. Drip: a lesson granted FULL by 3-4 whose schedule is not yet open
   → DRIP_LOCKED. Never applied to PREVIEW/LOCKED or to staff.

SECURITY: every failure mode resolves to LOCKED or NOT_FOUND, never FULL.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from access_engine.access.drip import (
    DripReason,
    LessonAvailability,
    compute_lesson_availability,
    format_availability_countdown,
)
from access_engine.access.policy import ContentPolicy
from access_engine.config.settings import (
    DRIP_UNKNOWN_ENROLLMENT_LOCK,
    get_engine_settings,
)
from access_engine.entitlements.evaluator import entitlements_for, has_course_access
from access_engine.entitlements.models import (
    AccessLevel,
    CourseAccessModel,
    SubscriptionTier,
)
from access_engine.errors import require
from access_engine.platform.rbac import MembershipRole, is_staff_role, parse_role
from access_engine.utils.dates import to_utc, utc_now
from access_engine.utils.numbers import safe_int
from access_engine.utils.records import get_field

logger = logging.getLogger(__name__)


class ContentKind(str, Enum):
    COURSE = "course"
    LESSON = "lesson"
    QUIZ = "quiz"


class DecisionReason(str, Enum):
    """Which rule produced the access level."""
    NOT_FOUND = "not_found"
    STAFF = "staff"
    FREE_COURSE = "free_course"
    STANDALONE_QUIZ = "standalone_quiz"
    ENTITLEMENT = "entitlement"
    SUBSCRIPTION_TIER = "subscription_tier"
    PREVIEW = "preview"
    LOCKED = "locked"
    DRIP_LOCKED = "drip_locked"


@dataclass(frozen=True)
class AccessContext:
    """
    Everything the resolver needs, as a point-in-time snapshot.

    kind names the target; the matching record (course, lesson or quiz) is
    None when it does not exist for the school. course is the parent course
    for lessons and quizzes, when known.
    """
    school_id: str
    kind: ContentKind
    course: Any = None
    lesson: Any = None
    quiz: Any = None
    user_email: Optional[str] = None
    role: Optional[MembershipRole] = None
    is_teacher: bool = False
    entitlements: Sequence[Any] = field(default_factory=tuple)
    subscription_tier: Any = None
    enroll_date: Any = None
    policy: Optional[ContentPolicy] = None
    now: Optional[datetime] = None

    @property
    def target(self) -> Any:
        return {
            ContentKind.COURSE: self.course,
            ContentKind.LESSON: self.lesson,
            ContentKind.QUIZ: self.quiz,
        }[self.kind]


@dataclass(frozen=True)
class AccessDecision:
    level: AccessLevel
    reason: DecisionReason
    availability: Optional[LessonAvailability] = None
    countdown_label: Optional[str] = None

    @property
    def is_full(self) -> bool:
        return self.level == AccessLevel.FULL


def _belongs_to_school(record: Any, school_id: str) -> bool:
    owner = get_field(record, "school_id")
    return owner is None or str(owner) == str(school_id)


def _target_course_id(ctx: AccessContext) -> Optional[str]:
    if ctx.kind == ContentKind.COURSE:
        value = get_field(ctx.course, "id")
    else:
        value = get_field(ctx.target, "course_id")
    return str(value) if value is not None else None


def _is_missing(ctx: AccessContext) -> bool:
    target = ctx.target
    if target is None or not _belongs_to_school(target, ctx.school_id):
        return True

    if ctx.kind == ContentKind.COURSE or ctx.course is None:
        return False

    if not _belongs_to_school(ctx.course, ctx.school_id):
        logger.warning(
            "Parent course belongs to another school",
            extra={"school_id": ctx.school_id, "kind": ctx.kind.value},
        )
        return True

    course_id = _target_course_id(ctx)
    if course_id is not None and str(get_field(ctx.course, "id")) != course_id:
        logger.warning(
            "Parent course does not match target",
            extra={"school_id": ctx.school_id, "kind": ctx.kind.value},
        )
        return True
    return False


def _base_grant(ctx: AccessContext, now: datetime) -> Optional[DecisionReason]:
    """Rules 3 and 4. The granting reason, or None when FULL is not granted."""
    course_id = _target_course_id(ctx)

    if ctx.kind == ContentKind.QUIZ and course_id is None:
        return DecisionReason.STANDALONE_QUIZ

    raw_level = get_field(ctx.course, "access_level")
    if ctx.course is None or raw_level:
        # Modern path. An unknown parent course is checked like PAID.
        if str(raw_level or "").strip().upper() == CourseAccessModel.FREE.value:
            return DecisionReason.FREE_COURSE
        grants = entitlements_for(ctx.entitlements, ctx.school_id, ctx.user_email, now)
        if has_course_access(grants, course_id):
            return DecisionReason.ENTITLEMENT
        return None

    course_tier = SubscriptionTier.parse(get_field(ctx.course, "access_tier"))
    user_tier = SubscriptionTier.parse(ctx.subscription_tier)
    if user_tier.rank >= course_tier.rank:
        return DecisionReason.SUBSCRIPTION_TIER
    return None


def _is_previewable(ctx: AccessContext) -> bool:
    if ctx.kind == ContentKind.LESSON:
        return bool(get_field(ctx.lesson, "is_preview"))
    if ctx.kind == ContentKind.QUIZ:
        limit = safe_int(
            get_field(ctx.quiz, "preview_limit_questions"),
            get_engine_settings().default_preview_questions,
        )
        return (limit or 0) > 0
    return False


def _apply_drip(ctx: AccessContext, base: AccessDecision, now: datetime) -> AccessDecision:
    availability = compute_lesson_availability(ctx.lesson, ctx.enroll_date, now)
    if availability.is_available:
        return AccessDecision(base.level, base.reason, availability=availability)

    if availability.reason == DripReason.ENROLLMENT_UNKNOWN:
        if get_engine_settings().drip_unknown_enrollment != DRIP_UNKNOWN_ENROLLMENT_LOCK:
            logger.warning(
                "Drip lesson without enrollment date, keeping course access",
                extra={
                    "school_id": ctx.school_id,
                    "lesson_id": get_field(ctx.lesson, "id"),
                    "user_email": ctx.user_email,
                },
            )
            return base
        return AccessDecision(
            AccessLevel.DRIP_LOCKED,
            DecisionReason.DRIP_LOCKED,
            availability=availability,
        )

    # An unreadable schedule has no unlock instant to count down to
    countdown_label = None
    if availability.available_at is not None:
        countdown_label = format_availability_countdown(availability.available_at, now).label
    return AccessDecision(
        AccessLevel.DRIP_LOCKED,
        DecisionReason.DRIP_LOCKED,
        availability=availability,
        countdown_label=countdown_label,
    )


def resolve_access_decision(ctx: AccessContext) -> AccessDecision:
    """Resolve access and report which rule decided, with drip details."""
    require(ctx.school_id, "school_id")
    now = to_utc(ctx.now) or utc_now()

    # 1. Existence within the school
    if _is_missing(ctx):
        return AccessDecision(AccessLevel.NOT_FOUND, DecisionReason.NOT_FOUND)

    # 2. Staff bypass dominates every other rule, drip included
    if ctx.is_teacher or is_staff_role(parse_role(ctx.role)):
        return AccessDecision(AccessLevel.FULL, DecisionReason.STAFF)

    # 3-4. Modern entitlement path, then legacy tier path
    reason = _base_grant(ctx, now)
    if reason is not None:
        base = AccessDecision(AccessLevel.FULL, reason)
        if ctx.kind == ContentKind.LESSON:
            return _apply_drip(ctx, base, now)
        return base

    # 5. Preview as last resort, never FULL
    policy = ctx.policy or ContentPolicy.default()
    if policy.allow_previews and _is_previewable(ctx):
        return AccessDecision(AccessLevel.PREVIEW, DecisionReason.PREVIEW)
    return AccessDecision(AccessLevel.LOCKED, DecisionReason.LOCKED)


def resolve_access(ctx: AccessContext) -> AccessLevel:
    """Resolve the single authoritative AccessLevel for ctx."""
    return resolve_access_decision(ctx).level

"""
Drip scheduling.

A lesson may be time gated:
- offset:   available N days after the user's enrollment in the course
- absolute: available from a fixed instant

compute_lesson_availability() and format_availability_countdown() are pure;
get_enroll_date() reads the Enrollment collection.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from access_engine.errors import require
from access_engine.utils.dates import to_utc, utc_now
from access_engine.utils.numbers import safe_int
from access_engine.utils.records import get_field

logger = logging.getLogger(__name__)


class DripMode(str, Enum):
    NONE = "none"
    OFFSET = "offset"
    ABSOLUTE = "absolute"


class DripReason(str, Enum):
    """Why a lesson is not yet available."""
    OFFSET_PENDING = "offset_pending"
    UNLOCK_DATE_PENDING = "unlock_date_pending"
    ENROLLMENT_UNKNOWN = "enrollment_unknown"
    SCHEDULE_UNREADABLE = "schedule_unreadable"


@dataclass(frozen=True)
class LessonAvailability:
    is_available: bool
    available_at: Optional[datetime] = None
    reason: Optional[DripReason] = None


@dataclass(frozen=True)
class Countdown:
    label: str
    seconds_remaining: int = 0


AVAILABLE = LessonAvailability(is_available=True)


def _unreadable(lesson: Any, field_name: str) -> LessonAvailability:
    logger.warning(
        "Unreadable drip schedule, lesson stays locked",
        extra={"lesson_id": get_field(lesson, "id"), "field": field_name},
    )
    return LessonAvailability(is_available=False, reason=DripReason.SCHEDULE_UNREADABLE)


def get_drip_mode(lesson: Any) -> DripMode:
    """
    Drip mode of a lesson.

    Lessons without an explicit drip_mode are inferred from the drip fields
    that are set; unrecognised modes count as no drip.
    """
    raw = get_field(lesson, "drip_mode")
    if raw:
        try:
            return DripMode(str(raw).strip().lower())
        except ValueError:
            logger.warning("Unknown drip mode, ignoring drip", extra={"drip_mode": raw})
            return DripMode.NONE

    if get_field(lesson, "drip_unlock_at"):
        return DripMode.ABSOLUTE
    if get_field(lesson, "drip_offset_days") is not None:
        return DripMode.OFFSET
    return DripMode.NONE


def compute_lesson_availability(
    lesson: Any,
    enroll_date: Any = None,
    now: Optional[datetime] = None,
) -> LessonAvailability:
    """
    Decide whether a lesson is currently unlocked.

    - no drip configuration → available
    - offset → available_at = enroll_date + drip_offset_days
    - absolute → available_at = drip_unlock_at
    - available iff now >= available_at

    An offset lesson with no known enroll date is not available and carries
    reason ENROLLMENT_UNKNOWN; the resolver decides what that means. A drip
    field that is set but cannot be read keeps the lesson closed with reason
    SCHEDULE_UNREADABLE.
    """
    if lesson is None:
        return AVAILABLE

    now = to_utc(now) or utc_now()
    mode = get_drip_mode(lesson)

    if mode == DripMode.ABSOLUTE:
        raw_unlock = get_field(lesson, "drip_unlock_at")
        if raw_unlock is None or raw_unlock == "":
            return AVAILABLE
        available_at = to_utc(raw_unlock)
        if available_at is None:
            return _unreadable(lesson, "drip_unlock_at")
        reason = DripReason.UNLOCK_DATE_PENDING

    elif mode == DripMode.OFFSET:
        raw_offset = get_field(lesson, "drip_offset_days")
        if raw_offset is None or raw_offset == "":
            return AVAILABLE
        offset_days = safe_int(raw_offset)
        if offset_days is None:
            return _unreadable(lesson, "drip_offset_days")
        enrolled = to_utc(enroll_date)
        if enrolled is None:
            return LessonAvailability(
                is_available=False,
                available_at=None,
                reason=DripReason.ENROLLMENT_UNKNOWN,
            )
        available_at = enrolled + timedelta(days=offset_days)
        reason = DripReason.OFFSET_PENDING

    else:
        return AVAILABLE

    if now >= available_at:
        return LessonAvailability(is_available=True, available_at=available_at)
    return LessonAvailability(is_available=False, available_at=available_at, reason=reason)


def _plural(n: int, unit: str) -> str:
    return f"in {n} {unit}" if n == 1 else f"in {n} {unit}s"


def format_availability_countdown(
    available_at: Any,
    now: Optional[datetime] = None,
) -> Countdown:
    """
    Human countdown to available_at: "available now", "in 5 minutes",
    "in 3 hours", "in 2 days". Rounded up; recomputed on every call.
    """
    target = to_utc(available_at)
    now = to_utc(now) or utc_now()
    if target is None or target <= now:
        return Countdown(label="available now")

    seconds = int(math.ceil((target - now).total_seconds()))
    minutes = int(math.ceil(seconds / 60))
    if minutes < 60:
        return Countdown(label=_plural(minutes, "minute"), seconds_remaining=seconds)

    hours = int(math.ceil(minutes / 60))
    if hours < 24:
        return Countdown(label=_plural(hours, "hour"), seconds_remaining=seconds)

    days = int(math.ceil(hours / 24))
    return Countdown(label=_plural(days, "day"), seconds_remaining=seconds)


async def get_enroll_date(
    store,
    school_id: str,
    user_email: Optional[str],
    course_id: Optional[str],
) -> Optional[datetime]:
    """Earliest enrollment of the user in the course, or None."""
    require(school_id, "school_id")
    if not user_email or not course_id:
        return None

    records = await store.filter(
        "Enrollment",
        school_id,
        {"user_email": user_email, "course_id": course_id},
        sort="enrolled_at",
        limit=1,
    )
    if not records:
        return None
    return to_utc(get_field(records[0], "enrolled_at"))

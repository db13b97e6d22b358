"""
SQLAlchemy models for the access engine.

Every model is school scoped; see SchoolScopedMixin.
"""

from access_engine.models.base import (
    Base,
    TimestampMixin,
    SchoolScopedMixin,
    RecordMixin,
    generate_uuid,
)
from access_engine.models.entitlement import Entitlement, Subscription
from access_engine.models.course import Course, Lesson, Enrollment, Download
from access_engine.models.quiz import Quiz, QuizQuestion, QuizAttempt
from access_engine.models.content_policy import ContentProtectionPolicy, EventLog
from access_engine.models.membership import SchoolMembership

# Entity names used by the persistence collaborator interface.
ENTITY_MODELS = {
    "Entitlement": Entitlement,
    "Subscription": Subscription,
    "Course": Course,
    "Lesson": Lesson,
    "Enrollment": Enrollment,
    "Download": Download,
    "Quiz": Quiz,
    "QuizQuestion": QuizQuestion,
    "QuizAttempt": QuizAttempt,
    "ContentProtectionPolicy": ContentProtectionPolicy,
    "EventLog": EventLog,
    "SchoolMembership": SchoolMembership,
}

__all__ = [
    "Base",
    "TimestampMixin",
    "SchoolScopedMixin",
    "RecordMixin",
    "generate_uuid",
    "Entitlement",
    "Subscription",
    "Course",
    "Lesson",
    "Enrollment",
    "Download",
    "Quiz",
    "QuizQuestion",
    "QuizAttempt",
    "ContentProtectionPolicy",
    "EventLog",
    "SchoolMembership",
    "ENTITY_MODELS",
]

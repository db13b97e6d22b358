"""
Quiz service: access-aware quiz reads and strict quiz writes.

Provides:
- list_quizzes / get_quiz_meta
- resolve_quiz_access(): quiz list badge (FULL / PREVIEW / LOCKED)
- load_quiz_for_access(): questions gated by access level
- save_quiz(): validated save, delete-then-recreate of question rows
- record_quiz_attempt() / submit_quiz_attempt()

CRITICAL SECURITY:
- A LOCKED quiz never issues a question query for a non-teacher
- PREVIEW exposes at most preview_limit_questions questions
- The quiz record handed back never carries inline questions
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from access_engine.access.policy import ContentPolicy, load_content_policy
from access_engine.access.resolver import AccessContext, ContentKind, resolve_access
from access_engine.access.service import AccessService
from access_engine.config.settings import get_engine_settings
from access_engine.entitlements.models import AccessLevel
from access_engine.errors import ContentUnavailableError, InputValidationError, require
from access_engine.platform.side_effects import BestEffortResult, SideEffectRunner
from access_engine.platform.tenant_context import SchoolContext
from access_engine.quizzes.grading import GradedAttempt, grade_quiz
from access_engine.quizzes.questions import (
    Question,
    normalize_question,
    select_question_source,
)
from access_engine.utils.dates import utc_now
from access_engine.utils.numbers import safe_int
from access_engine.utils.records import get_field

logger = logging.getLogger(__name__)

QUIZ_LIST_LIMIT = 250
SCHEMA_VERSION = 1


@dataclass
class QuizForAccess:
    quiz: Optional[Dict[str, Any]]
    questions: List[Question] = field(default_factory=list)
    access: AccessLevel = AccessLevel.NOT_FOUND


@dataclass(frozen=True)
class QuizListing:
    quiz: Dict[str, Any]
    access: AccessLevel


def _public_quiz(quiz: Any) -> Dict[str, Any]:
    """Quiz metadata without the inline question array."""
    record = dict(quiz) if isinstance(quiz, dict) else dict(quiz.to_record())
    record.pop("questions", None)
    return record


class QuizService:
    """Quiz reads and writes for one store."""

    def __init__(self, store, side_effects: Optional[SideEffectRunner] = None):
        self.store = store
        self.side_effects = side_effects or SideEffectRunner()
        self.access = AccessService(store)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_quizzes(
        self,
        school_id: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: str = "-created_date",
        limit: int = QUIZ_LIST_LIMIT,
    ) -> List[Dict[str, Any]]:
        require(school_id, "school_id")
        return await self.store.filter("Quiz", school_id, filters or {}, sort=sort, limit=limit)

    async def get_quiz_meta(self, school_id: str, quiz_id: str) -> Optional[Dict[str, Any]]:
        require(school_id, "school_id")
        require(quiz_id, "quiz_id")
        rows = await self.store.filter("Quiz", school_id, {"id": quiz_id}, sort="-created_date", limit=1)
        return rows[0] if rows else None

    @staticmethod
    def resolve_quiz_access(
        school_id: str,
        quiz: Any,
        is_teacher: bool,
        entitlements: Iterable[Any],
        policy: Optional[ContentPolicy] = None,
        now: Optional[datetime] = None,
        course: Any = None,
        subscription_tier: Any = None,
        user_email: Optional[str] = None,
    ) -> AccessLevel:
        """
        Access badge for a quiz in a list.

        course is the quiz's parent course when it was loaded; without it a
        course-bound quiz is checked like a PAID one.
        """
        return resolve_access(AccessContext(
            school_id=school_id,
            kind=ContentKind.QUIZ,
            quiz=quiz,
            course=course,
            user_email=user_email,
            is_teacher=is_teacher,
            entitlements=tuple(entitlements or ()),
            subscription_tier=subscription_tier,
            policy=policy,
            now=now,
        ))

    async def _parent_courses(self, school_id: str, quizzes: List[Any]) -> Dict[str, Any]:
        """Parent courses of quizzes, by id, in one query."""
        course_ids = sorted({
            str(get_field(q, "course_id")) for q in quizzes if get_field(q, "course_id")
        })
        if not course_ids:
            return {}
        courses = await self.store.filter("Course", school_id, {"id": course_ids}, limit=len(course_ids))
        return {str(get_field(c, "id")): c for c in courses}

    async def list_quizzes_for_user(
        self,
        context: SchoolContext,
        course_id: Optional[str] = None,
    ) -> List[QuizListing]:
        """
        Quizzes visible to the caller with their access badge.

        Students see published ones only. Badges use the same rules as
        get_quiz_for_user(), parent course included.
        """
        filters: Dict[str, Any] = {}
        if course_id:
            filters["course_id"] = course_id
        if not context.is_teacher:
            filters["is_published"] = True

        quizzes = await self.list_quizzes(context.school_id, filters)
        if context.is_teacher:
            return [QuizListing(quiz=_public_quiz(q), access=AccessLevel.FULL) for q in quizzes]

        courses = await self._parent_courses(context.school_id, quizzes)
        entitlements = await self.access.load_entitlements(context.school_id, context.user_email)
        policy = await load_content_policy(self.store, context.school_id)

        subscription_tier = None
        if any(not get_field(c, "access_level") for c in courses.values()):
            subscription_tier = await self.access.load_subscription_tier(
                context.school_id, context.user_email,
            )

        return [
            QuizListing(
                quiz=_public_quiz(q),
                access=self.resolve_quiz_access(
                    context.school_id, q, False, entitlements, policy,
                    course=courses.get(str(get_field(q, "course_id"))),
                    subscription_tier=subscription_tier,
                    user_email=context.user_email,
                ),
            )
            for q in quizzes
        ]

    async def load_quiz_for_access(
        self,
        school_id: str,
        quiz_id: str,
        access_level: AccessLevel,
        is_teacher: bool = False,
    ) -> QuizForAccess:
        """
        Quiz metadata plus the questions access_level permits.

        missing → (None, [], NOT_FOUND)
        LOCKED (non-teacher) → no question query at all
        PREVIEW (non-teacher) → first preview_limit_questions questions
        FULL or teacher → every question, by question_index
        """
        quiz = await self.get_quiz_meta(school_id, quiz_id)
        if quiz is None:
            return QuizForAccess(quiz=None, questions=[], access=AccessLevel.NOT_FOUND)

        level = AccessLevel.parse(access_level)

        if not is_teacher and not level.allows_content():
            logger.debug(
                "Question fetch skipped",
                extra={"school_id": school_id, "quiz_id": quiz_id, "access_level": level.value},
            )
            return QuizForAccess(quiz=_public_quiz(quiz), questions=[], access=level)

        limit = None
        if not is_teacher and level == AccessLevel.PREVIEW:
            limit = safe_int(
                get_field(quiz, "preview_limit_questions"),
                get_engine_settings().default_preview_questions,
            )
            if limit <= 0:
                return QuizForAccess(quiz=_public_quiz(quiz), questions=[], access=level)

        source = select_question_source(self.store, school_id, quiz)
        questions = await source.fetch_questions(limit)
        return QuizForAccess(quiz=_public_quiz(quiz), questions=questions, access=level)

    async def get_quiz_for_user(self, context: SchoolContext, quiz_id: str) -> QuizForAccess:
        """Resolve the caller's access to the quiz, then load accordingly."""
        decision = await self.access.resolve(context, ContentKind.QUIZ, quiz_id)
        if decision.level == AccessLevel.NOT_FOUND:
            return QuizForAccess(quiz=None, questions=[], access=AccessLevel.NOT_FOUND)
        return await self.load_quiz_for_access(
            context.school_id, quiz_id, decision.level, is_teacher=context.is_teacher,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def _quiz_payload(meta: Dict[str, Any], questions: List[Question], user_email: Optional[str]) -> Dict[str, Any]:
        settings = get_engine_settings()
        return {
            "title": meta.get("title") or "Untitled quiz",
            "description": meta.get("description") or "",
            "course_id": meta.get("course_id"),
            "lesson_id": meta.get("lesson_id"),
            "passing_score": safe_int(meta.get("passing_score"), settings.default_passing_score),
            "time_limit_seconds": safe_int(meta.get("time_limit_seconds")),
            "shuffle_questions": bool(meta.get("shuffle_questions")),
            "max_attempts": safe_int(meta.get("max_attempts")),
            "preview_limit_questions": safe_int(
                meta.get("preview_limit_questions"), settings.default_preview_questions,
            ),
            "is_published": bool(meta.get("is_published")),
            "questions_count": len(questions),
            "schema_version": SCHEMA_VERSION,
            "updated_by": user_email,
        }

    async def _replace_questions(self, school_id: str, quiz_id: str, questions: List[Question]) -> None:
        # Not atomic: a concurrent reader may observe a partial question set.
        existing = await self.store.filter(
            "QuizQuestion", school_id, {"quiz_id": quiz_id},
            sort="question_index", limit=get_engine_settings().question_fetch_limit,
        )
        for row in existing:
            await self.store.delete("QuizQuestion", row["id"], school_id, enforce_ownership=True)

        for index, question in enumerate(questions):
            await self.store.create("QuizQuestion", school_id, {
                "quiz_id": quiz_id,
                "question_index": index,
                **question.to_payload(),
            })

    async def save_quiz(
        self,
        school_id: str,
        meta: Optional[Dict[str, Any]],
        questions: Optional[Iterable[Any]] = None,
        quiz_id: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> str:
        """
        Create or update a quiz and its questions. Returns the quiz id.

        Questions with an empty prompt or fewer than two options are dropped,
        not reported as errors.
        """
        require(school_id, "school_id")
        meta = dict(meta or {})

        normalized = [normalize_question(q) for q in questions or []]
        valid = [q for q in normalized if q.is_valid]
        if len(valid) != len(normalized):
            logger.info(
                "Dropped invalid quiz questions",
                extra={"school_id": school_id, "quiz_id": quiz_id, "dropped": len(normalized) - len(valid)},
            )

        normalized_storage = self.store.supports_normalized_questions()
        payload = self._quiz_payload(meta, valid, user_email)
        if not normalized_storage:
            payload["questions"] = [q.to_payload() for q in valid]

        if quiz_id:
            updated = await self.store.update("Quiz", quiz_id, payload, school_id, enforce_ownership=True)
            if updated is None:
                raise InputValidationError("quiz_id", f"Quiz {quiz_id} not found")
        else:
            created = await self.store.create("Quiz", school_id, {**payload, "created_by": user_email})
            quiz_id = get_field(created, "id")

        if not quiz_id:
            raise InputValidationError("quiz_id", "Unable to determine quiz id after save")

        if normalized_storage:
            await self._replace_questions(school_id, quiz_id, valid)

        logger.info(
            "Quiz saved",
            extra={"school_id": school_id, "quiz_id": quiz_id, "questions_count": len(valid)},
        )
        return quiz_id

    async def record_quiz_attempt(
        self,
        school_id: str,
        quiz_id: str,
        user_email: str,
        score: Any = 0,
        passed: bool = False,
        answers: Optional[List[Dict[str, Any]]] = None,
        time_taken_seconds: Any = None,
    ) -> Dict[str, Any]:
        """Persist one immutable attempt. Rejects before any store call if an id is missing."""
        require(school_id, "school_id")
        require(quiz_id, "quiz_id")
        require(user_email, "user_email")

        return await self.store.create("QuizAttempt", school_id, {
            "quiz_id": quiz_id,
            "user_email": user_email,
            "score": safe_int(score, 0),
            "passed": bool(passed),
            "answers": list(answers or []),
            "time_taken_seconds": safe_int(time_taken_seconds),
            "completed_at": utc_now(),
        })

    async def submit_quiz_attempt(
        self,
        context: SchoolContext,
        quiz_id: str,
        answers: Any,
        time_taken_seconds: Any = None,
    ) -> BestEffortResult[GradedAttempt]:
        """
        Grade against the questions the caller may see, then record the
        attempt in the background.

        The graded result is returned immediately; a failed recording shows
        up as SIDE_EFFECT_FAILED on the result, never as an exception.
        """
        require(context.user_email, "user_email")
        require(quiz_id, "quiz_id")

        loaded = await self.get_quiz_for_user(context, quiz_id)
        if loaded.quiz is None or not (context.is_teacher or loaded.access.allows_content()):
            raise ContentUnavailableError(f"Quiz {quiz_id} is not available", loaded.access.value)

        graded = grade_quiz(
            loaded.questions,
            answers,
            safe_int(loaded.quiz.get("passing_score"), get_engine_settings().default_passing_score),
        )

        effect = self.side_effects.schedule(
            "record_quiz_attempt",
            self.record_quiz_attempt(
                context.school_id,
                quiz_id,
                context.user_email,
                score=graded.score,
                passed=graded.passed,
                answers=graded.answers,
                time_taken_seconds=time_taken_seconds,
            ),
            school_id=context.school_id,
            quiz_id=quiz_id,
        )
        return BestEffortResult(value=graded, side_effects=[effect])

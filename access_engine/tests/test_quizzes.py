"""
Tests for quiz access gating, saving and attempt submission.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from access_engine.entitlements.models import AccessLevel
from access_engine.errors import ContentUnavailableError, InputValidationError
from access_engine.models import Course, Entitlement, Quiz, QuizAttempt, QuizQuestion, Subscription
from access_engine.platform.side_effects import ResultOutcome
from access_engine.quizzes.questions import InlineQuestionSource, normalize_question
from access_engine.quizzes.service import QuizService
from access_engine.tests.conftest import SCHOOL_A, SCHOOL_B, STUDENT_EMAIL

QUIZ_RECORD = {
    "id": "q1",
    "school_id": SCHOOL_A,
    "course_id": "c1",
    "preview_limit_questions": 2,
    "passing_score": 50,
    "questions": [{"question": "inline", "options": ["a", "b"]}],
}


def _mock_store(quiz=QUIZ_RECORD, questions=None, normalized=True):
    """AsyncMock store answering Quiz and QuizQuestion filters."""
    async def _filter(entity, school_id, criteria=None, sort=None, limit=None):
        if entity == "Quiz":
            return [dict(quiz)] if quiz else []
        if entity == "QuizQuestion":
            rows = questions or []
            return rows[:limit] if limit else rows
        return []

    store = Mock()
    store.filter = AsyncMock(side_effect=_filter)
    store.create = AsyncMock(return_value={"id": "new"})
    store.update = AsyncMock()
    store.delete = AsyncMock()
    store.supports_normalized_questions = Mock(return_value=normalized)
    return store


def _entity_calls(store, entity):
    return [c for c in store.filter.call_args_list if c.args[0] == entity]


def _question_rows(n):
    return [
        {"question_index": i, "question": f"Q{i}", "options": ["a", "b"], "correct_answer": "a"}
        for i in range(n)
    ]


class TestNormalizeQuestion:

    def test_alternate_field_names(self):
        q = normalize_question({"prompt": "Why?", "choices": ["x", "y"], "correctIndex": 1, "rationale": "r"})
        assert q.question == "Why?"
        assert q.correct_answer == "y"
        assert q.explanation == "r"
        assert q.points == 1

    def test_out_of_range_index(self):
        assert normalize_question({"options": ["x"], "correct_option": 5}).correct_answer == ""

    def test_legacy_and_modern_names_agree(self):
        legacy = normalize_question({"prompt": "2+2?", "choices": ["3", "4"], "correctIndex": 1})
        modern = normalize_question({"question": "2+2?", "options": ["3", "4"], "correct_answer": "4"})
        assert legacy == modern

    def test_malformed_input_never_raises(self):
        q = normalize_question({"options": "nope", "points": "many"})
        assert q.options == []
        assert q.points == 1
        assert q.is_valid is False


class TestLoadQuizForAccess:

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_locked_issues_no_question_query(self):
        store = _mock_store(questions=_question_rows(5))
        service = QuizService(store)

        result = await service.load_quiz_for_access(SCHOOL_A, "q1", AccessLevel.LOCKED)

        assert result.questions == []
        assert result.access == AccessLevel.LOCKED
        assert _entity_calls(store, "QuizQuestion") == []
        assert "questions" not in result.quiz

    @pytest.mark.asyncio
    async def test_preview_limits_query(self):
        store = _mock_store(questions=_question_rows(10))
        service = QuizService(store)

        result = await service.load_quiz_for_access(SCHOOL_A, "q1", AccessLevel.PREVIEW)

        assert [q.question_index for q in result.questions] == [0, 1]
        calls = _entity_calls(store, "QuizQuestion")
        assert len(calls) == 1
        assert calls[0].kwargs["limit"] == 2

    @pytest.mark.asyncio
    async def test_zero_preview_limit_skips_fetch(self):
        store = _mock_store(quiz={**QUIZ_RECORD, "preview_limit_questions": 0}, questions=_question_rows(5))

        result = await QuizService(store).load_quiz_for_access(SCHOOL_A, "q1", AccessLevel.PREVIEW)

        assert result.questions == []
        assert _entity_calls(store, "QuizQuestion") == []

    @pytest.mark.asyncio
    async def test_teacher_sees_all_questions_even_when_locked(self):
        store = _mock_store(questions=_question_rows(5))

        result = await QuizService(store).load_quiz_for_access(
            SCHOOL_A, "q1", AccessLevel.LOCKED, is_teacher=True,
        )

        assert len(result.questions) == 5

    @pytest.mark.asyncio
    async def test_missing_quiz(self):
        store = _mock_store(quiz=None)

        result = await QuizService(store).load_quiz_for_access(SCHOOL_A, "q1", AccessLevel.FULL)

        assert result.quiz is None
        assert result.access == AccessLevel.NOT_FOUND
        assert _entity_calls(store, "QuizQuestion") == []

    @pytest.mark.asyncio
    async def test_inline_fallback(self):
        store = _mock_store(normalized=False)

        result = await QuizService(store).load_quiz_for_access(SCHOOL_A, "q1", AccessLevel.FULL)

        assert [q.question for q in result.questions] == ["inline"]
        assert result.questions[0].question_index == 0
        assert _entity_calls(store, "QuizQuestion") == []

    @pytest.mark.asyncio
    async def test_corrupt_inline_questions(self):
        source = InlineQuestionSource({"id": "q1", "questions": "not-a-list"})
        assert await source.fetch_questions() == []


class TestResolveQuizAccess:

    def test_badges(self):
        quiz = {"id": "q1", "school_id": SCHOOL_A, "course_id": "c1", "preview_limit_questions": 0}
        grant = {"type": "COURSE", "course_id": "c1"}

        assert QuizService.resolve_quiz_access(SCHOOL_A, quiz, False, []) == AccessLevel.LOCKED
        assert QuizService.resolve_quiz_access(SCHOOL_A, quiz, False, [grant]) == AccessLevel.FULL
        assert QuizService.resolve_quiz_access(SCHOOL_A, quiz, True, []) == AccessLevel.FULL
        assert QuizService.resolve_quiz_access(SCHOOL_A, {**quiz, "course_id": None}, False, []) == AccessLevel.FULL


class TestSaveQuiz:

    @pytest.mark.asyncio
    async def test_create_normalized(self, store):
        service = QuizService(store)
        questions = [
            {"question": "One", "options": ["a", "b"], "correct_answer": "a"},
            {"question": "", "options": ["a", "b"]},
            {"question": "Two", "options": ["only"]},
            {"prompt": "Three", "choices": ["x", "y"], "correctIndex": 0},
        ]

        quiz_id = await service.save_quiz(SCHOOL_A, {"title": "Intro"}, questions, user_email="rav@example.com")

        quiz = await service.get_quiz_meta(SCHOOL_A, quiz_id)
        assert quiz["questions_count"] == 2
        assert quiz["schema_version"] == 1
        assert quiz["created_by"] == "rav@example.com"
        rows = await store.filter("QuizQuestion", SCHOOL_A, {"quiz_id": quiz_id}, sort="question_index")
        assert [(r["question_index"], r["question"]) for r in rows] == [(0, "One"), (1, "Three")]

    @pytest.mark.asyncio
    async def test_single_option_question_is_dropped(self, store):
        service = QuizService(store)
        questions = [
            {"question": "A", "options": ["1", "2"]},
            {"question": "B", "options": ["1"]},
            {"question": "C", "options": ["1", "2", "3"]},
        ]

        quiz_id = await service.save_quiz(SCHOOL_A, {"title": "T"}, questions)

        assert (await service.get_quiz_meta(SCHOOL_A, quiz_id))["questions_count"] == 2
        assert len(await store.filter("QuizQuestion", SCHOOL_A, {"quiz_id": quiz_id})) == 2

    @pytest.mark.asyncio
    async def test_update_replaces_questions(self, store):
        service = QuizService(store)
        quiz_id = await service.save_quiz(SCHOOL_A, {"title": "v1"}, [
            {"question": "Old", "options": ["a", "b"]},
            {"question": "Older", "options": ["a", "b"]},
        ])

        await service.save_quiz(SCHOOL_A, {"title": "v2"}, [{"question": "New", "options": ["a", "b"]}],
                                quiz_id=quiz_id)

        rows = await store.filter("QuizQuestion", SCHOOL_A, {"quiz_id": quiz_id})
        assert [r["question"] for r in rows] == ["New"]
        assert (await service.get_quiz_meta(SCHOOL_A, quiz_id))["title"] == "v2"

    @pytest.mark.asyncio
    async def test_inline_storage(self, inline_store):
        service = QuizService(inline_store)

        quiz_id = await service.save_quiz(SCHOOL_A, {}, [{"question": "One", "options": ["a", "b"]}])

        quiz = await service.get_quiz_meta(SCHOOL_A, quiz_id)
        assert quiz["questions"][0]["question"] == "One"
        assert await inline_store.filter("QuizQuestion", SCHOOL_A, {}) == []

    @pytest.mark.asyncio
    async def test_update_missing_quiz(self, store):
        with pytest.raises(InputValidationError):
            await QuizService(store).save_quiz(SCHOOL_A, {}, [], quiz_id="missing")

    @pytest.mark.asyncio
    async def test_requires_school(self):
        store = _mock_store()
        with pytest.raises(InputValidationError):
            await QuizService(store).save_quiz("", {}, [])
        store.create.assert_not_called()


class TestRecordAttempt:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["school_id", "quiz_id", "user_email"])
    async def test_missing_ids_reject_before_store(self, missing):
        store = _mock_store()
        args = {"school_id": SCHOOL_A, "quiz_id": "q1", "user_email": STUDENT_EMAIL}
        args[missing] = None

        with pytest.raises(InputValidationError):
            await QuizService(store).record_quiz_attempt(**args)

        store.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_coerces_numbers(self, store):
        record = await QuizService(store).record_quiz_attempt(
            SCHOOL_A, "q1", STUDENT_EMAIL, score="85", passed=1, time_taken_seconds="nan-ish",
        )
        assert record["score"] == 85
        assert record["passed"] is True
        assert record["time_taken_seconds"] is None


class TestSubmitAttempt:

    def _seed_quiz(self, seed, **quiz_fields):
        seed(
            Course(id="c1", school_id=SCHOOL_A, access_level="PAID"),
            Quiz(id="q1", school_id=SCHOOL_A, course_id="c1", passing_score=50,
                 preview_limit_questions=0, is_published=True, **quiz_fields),
            QuizQuestion(school_id=SCHOOL_A, quiz_id="q1", question_index=0, question="Q0",
                         options=["a", "b"], correct_answer="a"),
            QuizQuestion(school_id=SCHOOL_A, quiz_id="q1", question_index=1, question="Q1",
                         options=["a", "b"], correct_answer="b"),
        )

    @pytest.mark.asyncio
    async def test_grades_and_records(self, store, seed, runner, student_ctx, db_session):
        self._seed_quiz(seed)
        seed(Entitlement(school_id=SCHOOL_A, user_email=STUDENT_EMAIL, type="COURSE", course_id="c1"))
        service = QuizService(store, side_effects=runner)

        result = await service.submit_quiz_attempt(student_ctx, "q1", {"0": "a", "1": "a"}, time_taken_seconds=40)

        assert result.value.score == 50
        assert result.value.passed is True
        assert await result.settle() == ResultOutcome.SUCCEEDED
        attempt = db_session.query(QuizAttempt).one()
        assert attempt.school_id == SCHOOL_A
        assert attempt.score == 50
        assert attempt.time_taken_seconds == 40

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_locked_quiz_rejects(self, store, seed, runner, student_ctx, db_session):
        self._seed_quiz(seed)

        with pytest.raises(ContentUnavailableError) as exc_info:
            await QuizService(store, side_effects=runner).submit_quiz_attempt(student_ctx, "q1", {"0": "a"})

        assert exc_info.value.access_level == "LOCKED"
        assert exc_info.value.http_status == 403
        assert runner.pending_count == 0
        assert db_session.query(QuizAttempt).count() == 0

    @pytest.mark.asyncio
    async def test_quiz_of_other_school_is_not_found(self, store, seed, runner, student_ctx):
        seed(Quiz(id="q1", school_id=SCHOOL_B, course_id=None))

        with pytest.raises(ContentUnavailableError) as exc_info:
            await QuizService(store, side_effects=runner).submit_quiz_attempt(student_ctx, "q1", {})

        assert exc_info.value.http_status == 404

    @pytest.mark.asyncio
    async def test_recording_failure_keeps_grade(self, seed, store, runner, student_ctx):
        self._seed_quiz(seed)
        seed(Entitlement(school_id=SCHOOL_A, user_email=STUDENT_EMAIL, type="ALL_COURSES"))
        store.create = AsyncMock(side_effect=RuntimeError("store down"))
        service = QuizService(store, side_effects=runner)

        result = await service.submit_quiz_attempt(student_ctx, "q1", ["a", "b"])

        assert result.value.score == 100
        assert await result.settle() == ResultOutcome.SIDE_EFFECT_FAILED
        assert isinstance(result.side_effects[0].error, RuntimeError)

    @pytest.mark.asyncio
    async def test_anonymous_cannot_submit(self, store, anonymous_ctx):
        with pytest.raises(InputValidationError):
            await QuizService(store).submit_quiz_attempt(anonymous_ctx, "q1", {})


class TestListQuizzes:

    @pytest.mark.asyncio
    async def test_students_see_published_with_badges(self, store, seed, student_ctx):
        seed(
            Quiz(id="q1", school_id=SCHOOL_A, course_id="c1", is_published=True, preview_limit_questions=0,
                 questions=[{"question": "secret"}]),
            Quiz(id="q2", school_id=SCHOOL_A, course_id=None, is_published=True),
            Quiz(id="q3", school_id=SCHOOL_A, course_id=None, is_published=False),
            Quiz(id="q4", school_id=SCHOOL_B, course_id=None, is_published=True),
        )

        listings = await QuizService(store).list_quizzes_for_user(student_ctx)

        badges = {item.quiz["id"]: item.access for item in listings}
        assert badges == {"q1": AccessLevel.LOCKED, "q2": AccessLevel.FULL}
        assert all("questions" not in item.quiz for item in listings)

    @pytest.mark.asyncio
    async def test_teachers_see_drafts(self, store, seed, teacher_ctx):
        seed(Quiz(id="q3", school_id=SCHOOL_A, course_id="c1", is_published=False))

        listings = await QuizService(store).list_quizzes_for_user(teacher_ctx)

        assert [(i.quiz["id"], i.access) for i in listings] == [("q3", AccessLevel.FULL)]

    @pytest.mark.asyncio
    async def test_free_course_badge_matches_quiz_view(self, store, seed, student_ctx):
        seed(
            Course(id="c-free", school_id=SCHOOL_A, access_level="FREE"),
            Quiz(id="q1", school_id=SCHOOL_A, course_id="c-free", is_published=True, preview_limit_questions=0),
        )
        service = QuizService(store)

        listings = await service.list_quizzes_for_user(student_ctx)
        loaded = await service.get_quiz_for_user(student_ctx, "q1")

        assert [i.access for i in listings] == [AccessLevel.FULL]
        assert loaded.access == AccessLevel.FULL

    @pytest.mark.asyncio
    async def test_legacy_course_badge_uses_subscription(self, store, seed, student_ctx):
        seed(
            Course(id="c-legacy", school_id=SCHOOL_A, access_tier="premium"),
            Course(id="c-elite", school_id=SCHOOL_A, access_tier="elite"),
            Subscription(school_id=SCHOOL_A, user_email=STUDENT_EMAIL, tier="premium"),
            Quiz(id="q1", school_id=SCHOOL_A, course_id="c-legacy", is_published=True, preview_limit_questions=0),
            Quiz(id="q2", school_id=SCHOOL_A, course_id="c-elite", is_published=True, preview_limit_questions=0),
        )

        listings = await QuizService(store).list_quizzes_for_user(student_ctx)

        badges = {item.quiz["id"]: item.access for item in listings}
        assert badges == {"q1": AccessLevel.FULL, "q2": AccessLevel.LOCKED}

    @pytest.mark.asyncio
    async def test_parent_courses_loaded_in_one_query(self, store, seed, student_ctx):
        seed(
            Course(id="c1", school_id=SCHOOL_A, access_level="FREE"),
            Course(id="c2", school_id=SCHOOL_A, access_level="PAID"),
            Quiz(id="q1", school_id=SCHOOL_A, course_id="c1", is_published=True),
            Quiz(id="q2", school_id=SCHOOL_A, course_id="c2", is_published=True),
            Quiz(id="q3", school_id=SCHOOL_A, course_id="c2", is_published=True),
        )
        original_filter = store.filter
        store.filter = AsyncMock(side_effect=original_filter)

        await QuizService(store).list_quizzes_for_user(student_ctx)

        course_calls = [c for c in store.filter.call_args_list if c.args[0] == "Course"]
        assert len(course_calls) == 1
        assert sorted(course_calls[0].args[2]["id"]) == ["c1", "c2"]
        assert not [c for c in store.filter.call_args_list if c.args[0] == "Subscription"]

"""
Quiz API routes.

Provides:
- GET  /api/quizzes                      quizzes with access badges
- GET  /api/quizzes/{quiz_id}            quiz with the questions the caller may see
- POST /api/quizzes                      create (teachers)
- PUT  /api/quizzes/{quiz_id}            update (teachers)
- POST /api/quizzes/{quiz_id}/attempts   grade and record an attempt

SECURITY: answers and explanations are only sent to teachers; students are
graded server-side.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from access_engine.api.dependencies.context import get_school_context
from access_engine.api.dependencies.store import get_quiz_service
from access_engine.api.schemas.access import (
    AttemptAnswerResponse,
    QuestionResponse,
    QuizAttemptRequest,
    QuizAttemptResponse,
    QuizForAccessResponse,
    QuizListItemResponse,
    QuizListResponse,
    QuizSaveRequest,
    QuizSaveResponse,
)
from access_engine.platform.rbac import require_teacher
from access_engine.platform.tenant_context import SchoolContext
from access_engine.quizzes.questions import Question
from access_engine.quizzes.service import QuizService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])


def _question_response(question: Question, include_answers: bool) -> QuestionResponse:
    return QuestionResponse(
        question_index=question.question_index,
        question=question.question,
        question_hebrew=question.question_hebrew,
        options=question.options,
        points=question.points,
        correct_answer=question.correct_answer if include_answers else None,
        explanation=question.explanation if include_answers else None,
    )


@router.get("", response_model=QuizListResponse)
async def list_quizzes(
    course_id: Optional[str] = None,
    context: SchoolContext = Depends(get_school_context),
    service: QuizService = Depends(get_quiz_service),
):
    listings = await service.list_quizzes_for_user(context, course_id=course_id)
    return QuizListResponse(
        quizzes=[QuizListItemResponse(quiz=item.quiz, access=item.access) for item in listings],
        total=len(listings),
    )


@router.get("/{quiz_id}", response_model=QuizForAccessResponse)
async def get_quiz(
    quiz_id: str,
    context: SchoolContext = Depends(get_school_context),
    service: QuizService = Depends(get_quiz_service),
):
    """Quiz metadata and questions; LOCKED callers get no questions."""
    loaded = await service.get_quiz_for_user(context, quiz_id)
    return QuizForAccessResponse(
        quiz=loaded.quiz,
        questions=[_question_response(q, context.is_teacher) for q in loaded.questions],
        access=loaded.access,
    )


async def _save(
    service: QuizService,
    context: SchoolContext,
    request: QuizSaveRequest,
    quiz_id: Optional[str] = None,
) -> QuizSaveResponse:
    require_teacher(context.role, page="quiz editor")
    saved_id = await service.save_quiz(
        context.school_id,
        request.meta(),
        request.questions,
        quiz_id=quiz_id,
        user_email=context.user_email,
    )
    return QuizSaveResponse(quiz_id=saved_id)


@router.post("", response_model=QuizSaveResponse, status_code=status.HTTP_201_CREATED)
async def create_quiz(
    request: QuizSaveRequest,
    context: SchoolContext = Depends(get_school_context),
    service: QuizService = Depends(get_quiz_service),
):
    return await _save(service, context, request)


@router.put("/{quiz_id}", response_model=QuizSaveResponse)
async def update_quiz(
    quiz_id: str,
    request: QuizSaveRequest,
    context: SchoolContext = Depends(get_school_context),
    service: QuizService = Depends(get_quiz_service),
):
    return await _save(service, context, request, quiz_id=quiz_id)


@router.post("/{quiz_id}/attempts", response_model=QuizAttemptResponse)
async def submit_attempt(
    quiz_id: str,
    request: QuizAttemptRequest,
    context: SchoolContext = Depends(get_school_context),
    service: QuizService = Depends(get_quiz_service),
):
    """
    Grade an attempt and record it in the background.

    The grade is returned even if recording the attempt fails.
    """
    result = await service.submit_quiz_attempt(
        context, quiz_id, request.answers, time_taken_seconds=request.time_taken_seconds,
    )
    graded = result.value
    answers: List[AttemptAnswerResponse] = [AttemptAnswerResponse(**a) for a in graded.answers]
    return QuizAttemptResponse(
        score=graded.score,
        passed=graded.passed,
        correct_count=graded.correct_count,
        total=graded.total,
        answers=answers,
        recording=result.outcome.value,
    )

"""
Quiz grading.

score = round(correct / total * 100), half up; 0 for an empty quiz.
passed iff score >= passing_score (default 70).
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from access_engine.config.settings import get_engine_settings
from access_engine.quizzes.questions import Question


@dataclass(frozen=True)
class GradedAttempt:
    score: int
    passed: bool
    correct_count: int
    total: int
    answers: List[Dict[str, Any]] = field(default_factory=list)


def _answer_for(answers: Any, position: int, question: Question) -> Any:
    if isinstance(answers, Mapping):
        key = question.question_index if question.question_index is not None else position
        if key in answers:
            return answers[key]
        return answers.get(str(key))
    if isinstance(answers, Sequence) and not isinstance(answers, str):
        return answers[position] if position < len(answers) else None
    return None


def grade_quiz(
    questions: Sequence[Question],
    answers: Any,
    passing_score: Optional[int] = None,
) -> GradedAttempt:
    """
    Grade answers against questions.

    answers maps question_index to the chosen option, or is a list in
    question order. Unanswered questions count as wrong.
    """
    if passing_score is None:
        passing_score = get_engine_settings().default_passing_score

    graded = []
    correct_count = 0
    for position, question in enumerate(questions):
        answer = _answer_for(answers, position, question)
        is_correct = answer is not None and question.correct_answer != "" and answer == question.correct_answer
        correct_count += int(is_correct)
        graded.append({
            "question_index": question.question_index if question.question_index is not None else position,
            "answer": answer,
            "is_correct": is_correct,
        })

    total = len(questions)
    score = int(math.floor(correct_count / total * 100 + 0.5)) if total else 0

    return GradedAttempt(
        score=score,
        passed=score >= passing_score,
        correct_count=correct_count,
        total=total,
        answers=graded,
    )

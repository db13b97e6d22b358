"""
Quiz question normalization and storage sources.

Questions live in one of two places:
  (A) Preferred: normalized QuizQuestion rows keyed by quiz_id + question_index
  (B) Fallback: inline Quiz.questions, for deployments without QuizQuestion

Both sit behind QuestionSource.fetch_questions(limit). The store's
supports_normalized_questions() capability picks the variant.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from access_engine.config.settings import get_engine_settings
from access_engine.utils.numbers import safe_int
from access_engine.utils.records import get_field

logger = logging.getLogger(__name__)


def _first(raw: Any, *names: str) -> Any:
    for name in names:
        value = get_field(raw, name)
        if value is not None:
            return value
    return None


@dataclass
class Question:
    """Canonical quiz question."""
    question: str = ""
    question_hebrew: str = ""
    options: List[Any] = field(default_factory=list)
    correct_answer: Any = ""
    explanation: str = ""
    points: int = 1
    question_index: Optional[int] = None

    @property
    def is_valid(self) -> bool:
        """Savable: non-empty prompt and at least two options."""
        return bool(str(self.question or "").strip()) and len(self.options) >= 2

    def to_payload(self) -> Dict[str, Any]:
        """Stored fields, without the position."""
        payload = asdict(self)
        payload.pop("question_index")
        return payload


def normalize_question(raw: Any) -> Question:
    """
    Canonical question from heterogeneous input.

    Accepted names:
        question / prompt
        question_hebrew / prompt_hebrew
        options / choices
        correct_answer / correctAnswer, or an index: correctIndex / correct_option
        explanation / rationale
        points (default 1)

    A correct-answer index outside the options list resolves to no answer.
    Malformed input yields empty, neutral fields; this never raises.
    """
    options = get_field(raw, "options")
    if not isinstance(options, (list, tuple)):
        options = get_field(raw, "choices")
    options = list(options) if isinstance(options, (list, tuple)) else []

    correct = _first(raw, "correct_answer", "correctAnswer")
    if not correct:
        index = safe_int(_first(raw, "correctIndex", "correct_option"))
        if index is not None and 0 <= index < len(options):
            correct = options[index]

    return Question(
        question=_first(raw, "question", "prompt") or "",
        question_hebrew=_first(raw, "question_hebrew", "prompt_hebrew") or "",
        options=options,
        correct_answer=correct if correct is not None else "",
        explanation=_first(raw, "explanation", "rationale") or "",
        points=safe_int(get_field(raw, "points"), 1),
        question_index=safe_int(get_field(raw, "question_index")),
    )


class QuestionSource(ABC):
    """Uniform access to a quiz's questions, in question_index order."""

    @abstractmethod
    async def fetch_questions(self, limit: Optional[int] = None) -> List[Question]:
        """At most limit questions; all when limit is None."""


class NormalizedQuestionSource(QuestionSource):
    """QuizQuestion rows. The limit is pushed down into the store query."""

    def __init__(self, store, school_id: str, quiz_id: str, fetch_limit: Optional[int] = None):
        self.store = store
        self.school_id = school_id
        self.quiz_id = quiz_id
        self.fetch_limit = fetch_limit or get_engine_settings().question_fetch_limit

    async def fetch_questions(self, limit: Optional[int] = None) -> List[Question]:
        rows = await self.store.filter(
            "QuizQuestion",
            self.school_id,
            {"quiz_id": self.quiz_id},
            sort="question_index",
            limit=limit or self.fetch_limit,
        )
        questions = sorted(
            (normalize_question(r) for r in rows or []),
            key=lambda q: q.question_index if q.question_index is not None else 0,
        )
        return questions[:limit] if limit else questions


class InlineQuestionSource(QuestionSource):
    """
    Questions embedded in the quiz record.

    The array already arrived with the quiz, so only the returned list is
    limited.
    """

    def __init__(self, quiz: Any):
        self.quiz = quiz

    async def fetch_questions(self, limit: Optional[int] = None) -> List[Question]:
        raw = get_field(self.quiz, "questions")
        if raw is None:
            return []
        if not isinstance(raw, (list, tuple)):
            logger.warning(
                "Corrupt inline questions, ignoring",
                extra={"quiz_id": get_field(self.quiz, "id"), "type": type(raw).__name__},
            )
            return []

        questions = []
        for i, item in enumerate(raw):
            q = normalize_question(item)
            if q.question_index is None:
                q.question_index = i
            questions.append(q)
        return questions[:limit] if limit else questions


def select_question_source(store, school_id: str, quiz: Any) -> QuestionSource:
    if store.supports_normalized_questions():
        return NormalizedQuestionSource(store, school_id, get_field(quiz, "id"))
    return InlineQuestionSource(quiz)

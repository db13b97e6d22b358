"""
Pydantic schemas for the access engine API.

Request models validate shape only; quiz question payloads stay loosely
typed because normalization accepts several legacy field names.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from access_engine.entitlements.models import AccessLevel


# =============================================================================
# Access
# =============================================================================

class AccessDecisionResponse(BaseModel):
    """Resolved access for one course, lesson or quiz."""

    kind: str = Field(..., description="course | lesson | quiz")
    target_id: str
    access_level: AccessLevel
    reason: str = Field(..., description="Rule that decided the access level")
    available_at: Optional[datetime] = Field(None, description="Drip unlock instant, when known")
    countdown_label: Optional[str] = Field(None, description="e.g. 'in 3 days'")


class DripInfoResponse(BaseModel):
    is_available: bool = True
    available_at: Optional[datetime] = None
    countdown_label: Optional[str] = None
    reason: Optional[str] = None


class LessonAccessResponse(BaseModel):
    """Full access snapshot for a lesson."""

    lesson_id: str
    access_level: AccessLevel
    has_course_access: bool
    preview_allowed: bool
    drip: DripInfoResponse
    can_copy: bool
    can_download: bool
    has_copy_license: bool
    has_download_license: bool
    watermark_text: str = ""
    max_preview_seconds: int
    max_preview_chars: int


class MaterialResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    content_text: str = ""
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    is_preview: bool = False
    preview_limit_chars: Optional[int] = None
    preview_limit_seconds: Optional[int] = None


class LessonMaterialResponse(BaseModel):
    """Access snapshot plus the sanitized material. material is null below PREVIEW."""

    access: LessonAccessResponse
    material: Optional[MaterialResponse] = None


# =============================================================================
# Quizzes
# =============================================================================

class QuestionResponse(BaseModel):
    """A quiz question. correct_answer and explanation are sent to teachers only."""

    question_index: Optional[int] = None
    question: str
    question_hebrew: str = ""
    options: List[Any] = Field(default_factory=list)
    points: int = 1
    correct_answer: Optional[Any] = None
    explanation: Optional[str] = None


class QuizForAccessResponse(BaseModel):
    quiz: Optional[Dict[str, Any]] = None
    questions: List[QuestionResponse] = Field(default_factory=list)
    access: AccessLevel


class QuizListItemResponse(BaseModel):
    quiz: Dict[str, Any]
    access: AccessLevel


class QuizListResponse(BaseModel):
    quizzes: List[QuizListItemResponse] = Field(default_factory=list)
    total: int = 0


class QuizSaveRequest(BaseModel):
    """Quiz metadata and raw questions. Invalid questions are dropped, not rejected."""

    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    course_id: Optional[str] = None
    lesson_id: Optional[str] = None
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    time_limit_seconds: Optional[int] = Field(None, ge=0)
    shuffle_questions: bool = False
    max_attempts: Optional[int] = Field(None, ge=1)
    preview_limit_questions: Optional[int] = Field(None, ge=0)
    is_published: bool = False
    questions: List[Dict[str, Any]] = Field(default_factory=list)

    def meta(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"questions"})


class QuizSaveResponse(BaseModel):
    quiz_id: str


class QuizAttemptRequest(BaseModel):
    answers: Union[Dict[str, Any], List[Any]] = Field(
        ..., description="question_index → answer, or answers in question order",
    )
    time_taken_seconds: Optional[int] = Field(None, ge=0)


class AttemptAnswerResponse(BaseModel):
    question_index: int
    answer: Optional[Any] = None
    is_correct: bool


class QuizAttemptResponse(BaseModel):
    """Graded attempt. recording is pending while the attempt is being stored."""

    score: int = Field(..., ge=0, le=100)
    passed: bool
    correct_count: int
    total: int
    answers: List[AttemptAnswerResponse] = Field(default_factory=list)
    recording: str = Field(..., description="succeeded | side_effect_pending | side_effect_failed")


# =============================================================================
# Downloads
# =============================================================================

class DownloadResponse(BaseModel):
    allowed: bool
    url: Optional[str] = None
    reason: str

    @field_validator("url")
    @classmethod
    def url_only_when_allowed(cls, v: Optional[str], info) -> Optional[str]:
        if not info.data.get("allowed"):
            return None
        return v

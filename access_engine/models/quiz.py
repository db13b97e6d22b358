"""
Quiz models.

Questions live either in normalized QuizQuestion rows (preferred) or inline
in Quiz.questions (fallback for deployments without the QuizQuestion
collection).
"""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, JSON, Index, UniqueConstraint

from access_engine.models.base import (
    Base, TimestampMixin, SchoolScopedMixin, RecordMixin, generate_uuid, utc_now,
)


class Quiz(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """Quiz metadata. course_id NULL means a standalone, ungated quiz."""

    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(String(36), nullable=True, index=True)
    lesson_id = Column(String(36), nullable=True)
    title = Column(String(255), nullable=False, default="Untitled quiz")
    description = Column(Text, nullable=False, default="")
    passing_score = Column(Integer, nullable=False, default=70)
    time_limit_seconds = Column(Integer, nullable=True)
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    max_attempts = Column(Integer, nullable=True)
    preview_limit_questions = Column(Integer, nullable=False, default=2)
    is_published = Column(Boolean, nullable=False, default=False)
    questions_count = Column(Integer, nullable=False, default=0)
    schema_version = Column(Integer, nullable=False, default=1)
    questions = Column(JSON, nullable=True, comment="Inline fallback storage")
    created_by = Column(String(255), nullable=True)
    updated_by = Column(String(255), nullable=True)


class QuizQuestion(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """Normalized quiz question row, ordered by question_index."""

    __tablename__ = "quiz_questions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    quiz_id = Column(String(36), nullable=False, index=True)
    question_index = Column(Integer, nullable=False)
    question = Column(Text, nullable=False)
    question_hebrew = Column(Text, nullable=False, default="")
    options = Column(JSON, nullable=False, default=list)
    correct_answer = Column(Text, nullable=False, default="")
    explanation = Column(Text, nullable=False, default="")
    points = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("quiz_id", "question_index", name="uq_quiz_question_index"),
    )


class QuizAttempt(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """
    Immutable record of one quiz submission.

    Created once per submission and never updated.
    """

    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    quiz_id = Column(String(36), nullable=False)
    user_email = Column(String(255), nullable=False)
    score = Column(Integer, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    answers = Column(JSON, nullable=False, default=list)
    time_taken_seconds = Column(Integer, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_quiz_attempts_school_quiz_user", "school_id", "quiz_id", "user_email"),
    )

"""
Store and service dependencies.

Each request gets a SqlAlchemyScopedStore over its own database session.
Services share the process-wide SideEffectRunner so background audit and
attempt writes can be drained on shutdown.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from access_engine.access.service import AccessService
from access_engine.config.settings import get_engine_settings
from access_engine.database.session import get_db_session
from access_engine.downloads.service import DownloadService
from access_engine.platform.side_effects import get_side_effect_runner
from access_engine.quizzes.service import QuizService
from access_engine.repositories.scoped_store import SqlAlchemyScopedStore


def get_store(db_session: Session = Depends(get_db_session)) -> SqlAlchemyScopedStore:
    return SqlAlchemyScopedStore(
        db_session,
        normalized_questions=get_engine_settings().normalized_questions,
    )


def get_access_service(store=Depends(get_store)) -> AccessService:
    return AccessService(store)


def get_quiz_service(store=Depends(get_store)) -> QuizService:
    return QuizService(store, side_effects=get_side_effect_runner())


def get_download_service(store=Depends(get_store)) -> DownloadService:
    return DownloadService(store, side_effects=get_side_effect_runner())

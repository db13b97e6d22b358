"""
Shared test fixtures.

Each test gets its own in-memory SQLite database behind a
SqlAlchemyScopedStore; seed rows go straight through the session.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from access_engine.config.settings import reset_engine_settings
from access_engine.models import Base
from access_engine.platform.rbac import MembershipRole
from access_engine.platform.side_effects import SideEffectRunner
from access_engine.platform.tenant_context import SchoolContext
from access_engine.repositories.scoped_store import SqlAlchemyScopedStore

os.environ.setdefault("ENV", "test")

SCHOOL_A = "school-a"
SCHOOL_B = "school-b"
STUDENT_EMAIL = "student@example.com"
TEACHER_EMAIL = "rav@example.com"

# Fixed clock used across resolver and drip tests
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _engine_settings(monkeypatch):
    """Every test starts from the repository config file."""
    monkeypatch.delenv("ACCESS_ENGINE_CONFIG", raising=False)
    monkeypatch.delenv("GLOBAL_ADMINS", raising=False)
    reset_engine_settings()
    yield
    reset_engine_settings()


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def store(db_session) -> SqlAlchemyScopedStore:
    return SqlAlchemyScopedStore(db_session)


@pytest.fixture
def inline_store(db_session) -> SqlAlchemyScopedStore:
    """Store for deployments without the QuizQuestion collection."""
    return SqlAlchemyScopedStore(db_session, normalized_questions=False)


@pytest.fixture
def runner() -> SideEffectRunner:
    return SideEffectRunner()


@pytest.fixture
def seed(db_session):
    """
    Insert ORM rows and return them.

    Usage:
        course = seed(Course(id="c1", school_id=SCHOOL_A, access_level="PAID"))
    """
    def _seed(*rows):
        db_session.add_all(rows)
        db_session.commit()
        return rows[0] if len(rows) == 1 else rows
    return _seed


@pytest.fixture
def student_ctx() -> SchoolContext:
    return SchoolContext(school_id=SCHOOL_A, user_email=STUDENT_EMAIL, role=MembershipRole.STUDENT)


@pytest.fixture
def teacher_ctx() -> SchoolContext:
    return SchoolContext(school_id=SCHOOL_A, user_email=TEACHER_EMAIL, role=MembershipRole.INSTRUCTOR)


@pytest.fixture
def anonymous_ctx() -> SchoolContext:
    return SchoolContext(school_id=SCHOOL_A)


@pytest.fixture
def temp_config_dir(tmp_path) -> Path:
    return tmp_path


@pytest.fixture
def make_yaml_config(temp_config_dir, monkeypatch):
    """
    Write an access_engine.yml and point the settings loader at it.

    Usage:
        make_yaml_config({"drip": {"unknown_enrollment": "lock"}})
    """
    def _make(config: dict) -> Path:
        config_path = temp_config_dir / "access_engine.yml"
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        monkeypatch.setenv("ACCESS_ENGINE_CONFIG", str(config_path))
        reset_engine_settings()
        return config_path
    return _make


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")

"""
HTTP tests for the access engine routes.

The store dependency is overridden with the per-test SQLite store.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from access_engine.api.dependencies.store import get_store
from access_engine.main import app
from access_engine.models import (
    Course, Download, Entitlement, EventLog, Lesson, Quiz, QuizQuestion, SchoolMembership,
)
from access_engine.tests.conftest import SCHOOL_A, SCHOOL_B, STUDENT_EMAIL, TEACHER_EMAIL

STUDENT_HEADERS = {"X-School-Id": SCHOOL_A, "X-User-Email": STUDENT_EMAIL}
TEACHER_HEADERS = {"X-School-Id": SCHOOL_A, "X-User-Email": TEACHER_EMAIL}


@pytest.fixture
def client(store, seed, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    seed(
        SchoolMembership(school_id=SCHOOL_A, user_email=STUDENT_EMAIL, role="STUDENT"),
        SchoolMembership(school_id=SCHOOL_A, user_email=TEACHER_EMAIL, role="INSTRUCTOR"),
    )
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def course_content(seed):
    return seed(
        Course(id="c1", school_id=SCHOOL_A, access_level="PAID"),
        Lesson(id="l1", school_id=SCHOOL_A, course_id="c1", content="full text"),
        Lesson(id="l2", school_id=SCHOOL_A, course_id="c1", is_preview=True, content="z" * 2000),
        Quiz(id="q1", school_id=SCHOOL_A, course_id="c1", is_published=True, passing_score=100,
             preview_limit_questions=1),
        QuizQuestion(school_id=SCHOOL_A, quiz_id="q1", question_index=0, question="Q0",
                     options=["a", "b"], correct_answer="a", explanation="because"),
        QuizQuestion(school_id=SCHOOL_A, quiz_id="q1", question_index=1, question="Q1",
                     options=["a", "b"], correct_answer="b"),
    )


class TestSchoolContext:

    def test_missing_school_header(self, client):
        response = client.get("/api/lessons/l1/access")
        assert response.status_code == 400
        assert response.json()["field"] == "school_id"

    @pytest.mark.security
    def test_role_header_does_not_grant_full_access(self, client, course_content):
        headers = {"X-School-Id": SCHOOL_A, "X-User-Email": "nobody@example.com", "X-Member-Role": "OWNER"}

        body = client.get("/api/lessons/l1/material", headers=headers).json()

        assert body["access"]["access_level"] == "LOCKED"
        assert body["material"] is None

    @pytest.mark.security
    def test_role_header_does_not_expose_answers(self, client, course_content):
        headers = {**STUDENT_HEADERS, "X-Member-Role": "OWNER"}

        body = client.get("/api/quizzes/q1", headers=headers).json()

        assert body["access"] == "PREVIEW"
        assert body["questions"][0]["correct_answer"] is None

    @pytest.mark.security
    def test_role_header_cannot_save_quiz(self, client):
        response = client.post(
            "/api/quizzes", json={"title": "x"},
            headers={"X-School-Id": SCHOOL_A, "X-Member-Role": "INSTRUCTOR"},
        )

        assert response.status_code == 403
        assert response.json()["error"] == "role_required"

    @pytest.mark.security
    def test_teacher_of_other_school_is_student_here(self, client, seed, course_content):
        seed(SchoolMembership(school_id=SCHOOL_B, user_email="other-rav@example.com", role="OWNER"))
        headers = {"X-School-Id": SCHOOL_A, "X-User-Email": "other-rav@example.com"}

        response = client.post("/api/quizzes", json={"title": "x"}, headers=headers)

        assert response.status_code == 403


class TestAccessRoutes:

    def test_resolve_locked(self, client, course_content):
        response = client.get("/api/access/lesson/l1", headers=STUDENT_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["access_level"] == "LOCKED"
        assert body["reason"] == "locked"

    def test_resolve_unknown_kind(self, client):
        assert client.get("/api/access/video/v1", headers=STUDENT_HEADERS).status_code == 422

    @pytest.mark.security
    def test_other_school_is_not_found(self, client, course_content):
        headers = {**STUDENT_HEADERS, "X-School-Id": SCHOOL_B}
        response = client.get("/api/access/course/c1", headers=headers)
        assert response.json()["access_level"] == "NOT_FOUND"

    def test_lesson_material_locked(self, client, course_content):
        response = client.get("/api/lessons/l1/material", headers=STUDENT_HEADERS)

        body = response.json()
        assert body["access"]["access_level"] == "LOCKED"
        assert body["material"] is None

    def test_lesson_material_preview(self, client, course_content):
        response = client.get("/api/lessons/l2/material", headers=STUDENT_HEADERS)

        body = response.json()
        assert body["access"]["access_level"] == "PREVIEW"
        assert body["material"]["is_preview"] is True
        assert len(body["material"]["content_text"]) == 1503

    def test_lesson_access_full(self, client, seed, course_content):
        seed(Entitlement(school_id=SCHOOL_A, user_email=STUDENT_EMAIL, type="COURSE", course_id="c1"))

        body = client.get("/api/lessons/l1/access", headers=STUDENT_HEADERS).json()

        assert body["access_level"] == "FULL"
        assert body["has_course_access"] is True
        assert body["drip"]["is_available"] is True
        assert body["watermark_text"].startswith(STUDENT_EMAIL)


class TestQuizRoutes:

    def test_preview_hides_answers(self, client, course_content):
        body = client.get("/api/quizzes/q1", headers=STUDENT_HEADERS).json()

        assert body["access"] == "PREVIEW"
        assert [q["question"] for q in body["questions"]] == ["Q0"]
        assert body["questions"][0]["correct_answer"] is None
        assert body["questions"][0]["explanation"] is None

    def test_teacher_sees_answers(self, client, course_content):
        body = client.get("/api/quizzes/q1", headers=TEACHER_HEADERS).json()

        assert body["access"] == "FULL"
        assert [q["correct_answer"] for q in body["questions"]] == ["a", "b"]

    def test_list(self, client, course_content):
        body = client.get("/api/quizzes", headers=STUDENT_HEADERS).json()
        assert body["total"] == 1
        assert body["quizzes"][0]["access"] == "PREVIEW"

    def test_student_cannot_save(self, client):
        response = client.post("/api/quizzes", json={"title": "x"}, headers=STUDENT_HEADERS)
        assert response.status_code == 403
        assert response.json()["error"] == "role_required"

    def test_teacher_creates_and_updates(self, client):
        created = client.post("/api/quizzes", headers=TEACHER_HEADERS, json={
            "title": "Intro",
            "questions": [{"question": "One", "options": ["a", "b"], "correct_answer": "a"}],
        })
        assert created.status_code == 201
        quiz_id = created.json()["quiz_id"]

        updated = client.put(f"/api/quizzes/{quiz_id}", headers=TEACHER_HEADERS, json={"title": "Renamed"})
        assert updated.status_code == 200

        body = client.get(f"/api/quizzes/{quiz_id}", headers=TEACHER_HEADERS).json()
        assert body["quiz"]["title"] == "Renamed"
        assert body["questions"] == []

    def test_update_missing_quiz(self, client):
        response = client.put("/api/quizzes/missing", headers=TEACHER_HEADERS, json={"title": "x"})
        assert response.status_code == 400

    def test_submit_attempt(self, client, seed, course_content):
        seed(Entitlement(school_id=SCHOOL_A, user_email=STUDENT_EMAIL, type="ALL_COURSES"))

        response = client.post(
            "/api/quizzes/q1/attempts",
            headers=STUDENT_HEADERS,
            json={"answers": {"0": "a", "1": "b"}, "time_taken_seconds": 12},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["score"] == 100
        assert body["passed"] is True
        assert body["recording"] in ("succeeded", "side_effect_pending")

    def test_submit_locked_quiz(self, client, seed):
        seed(Quiz(id="q2", school_id=SCHOOL_A, course_id="c9", preview_limit_questions=0))

        response = client.post("/api/quizzes/q2/attempts", headers=STUDENT_HEADERS, json={"answers": []})

        assert response.status_code == 403
        assert response.json()["access_level"] == "LOCKED"

    def test_submit_missing_quiz(self, client):
        response = client.post("/api/quizzes/nope/attempts", headers=STUDENT_HEADERS, json={"answers": []})
        assert response.status_code == 404


class TestDownloadRoutes:

    def test_blocked_download_has_no_url(self, client, seed):
        seed(Download(id="d1", school_id=SCHOOL_A, course_id="c1", price=Decimal("10"),
                      file_url="https://files/secret.pdf"))

        body = client.get("/api/downloads/d1/url", headers=STUDENT_HEADERS).json()

        assert body == {"allowed": False, "url": None, "reason": "downloads_disabled"}

    def test_free_download(self, client, seed):
        seed(Download(id="d2", school_id=SCHOOL_A, course_id=None, file_url="https://files/free.pdf"))

        body = client.get("/api/downloads/d2/url", headers=STUDENT_HEADERS).json()

        assert body["allowed"] is True
        assert body["url"] == "https://files/free.pdf"

    def test_audit_written_by_shutdown(self, store, seed, db_session, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        seed(Download(id="d3", school_id=SCHOOL_A, course_id=None, file_url="https://files/a.pdf"))
        app.dependency_overrides[get_store] = lambda: store
        try:
            with TestClient(app) as test_client:
                test_client.get("/api/downloads/d3/url", headers=STUDENT_HEADERS)
        finally:
            app.dependency_overrides.clear()

        events = db_session.query(EventLog).all()
        assert [e.event_type for e in events] == ["download_granted"]

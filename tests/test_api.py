import pytest
from fastapi.testclient import TestClient

from classroom import main as main_module
from classroom.common.deps import CurrentUser, get_current_user
from classroom.common.exceptions import (
    NotFoundError,
    PayloadValidationError,
    PolicyViolation,
    ReviewConflict,
)
from classroom.features.analytics.schema import LeaderboardEntry
from classroom.features.analytics.service import analytics_service
from classroom.features.assessments.policy import AttemptStatus
from classroom.features.challenges.service import challenges_service
from classroom.features.evaluations.schemas import EvaluationSubmissionResult
from classroom.features.evaluations.service import evaluations_service

app = main_module.app
client = TestClient(app)

STUDENT = CurrentUser(id="stu-1", email="ana@aula.test", role="student")
TEACHER = CurrentUser(id="t1", email="profe@aula.test", role="teacher")


@pytest.fixture
def as_user():
    def _set(user):
        app.dependency_overrides[get_current_user] = lambda: user

    yield _set
    app.dependency_overrides.clear()


def test_root_and_health(monkeypatch):
    monkeypatch.setattr(main_module, "ping_database", lambda: None)
    assert client.get("/").json()["status"] == "ok"
    resp = client.get("/healthz")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["components"]["database"]["status"] == "not-configured"
    assert resp.headers["X-Request-Id"]


def test_request_id_is_echoed(monkeypatch):
    monkeypatch.setattr(main_module, "ping_database", lambda: None)
    resp = client.get("/healthz", headers={"X-Request-Id": "abc-123"})
    assert resp.headers["X-Request-Id"] == "abc-123"


def test_submit_evaluation(monkeypatch, as_user):
    captured = {}

    async def fake_submit(evaluation_id, student_id, answers, class_id=None, client_score=None):
        captured.update(evaluation_id=evaluation_id, student_id=student_id, class_id=class_id)
        return EvaluationSubmissionResult(
            response_id="r1",
            evaluation_id=evaluation_id,
            score=100,
            correct=2,
            total=2,
            attempt_number=1,
            attempts_allowed=2,
        )

    monkeypatch.setattr(evaluations_service, "submit", fake_submit)
    as_user(STUDENT)

    resp = client.post("/evaluations/ev-1/responses", json={"answers": [0, 1], "class_id": "class-1"})
    assert resp.status_code == 201
    assert resp.json()["score"] == 100
    assert captured == {"evaluation_id": "ev-1", "student_id": "stu-1", "class_id": "class-1"}


def test_policy_violation_maps_to_409(monkeypatch, as_user):
    async def fake_submit(*args, **kwargs):
        raise PolicyViolation(AttemptStatus.ATTEMPTS_EXHAUSTED)

    monkeypatch.setattr(evaluations_service, "submit", fake_submit)
    as_user(STUDENT)

    resp = client.post("/evaluations/ev-1/responses", json={"answers": [0]})
    assert resp.status_code == 409
    assert resp.json()["detail"] == {"reason": "ATTEMPTS_EXHAUSTED"}


def test_payload_error_maps_to_422(monkeypatch, as_user):
    async def fake_submit(*args, **kwargs):
        raise PayloadValidationError("invalid_quiz_answers", [{"loc": [0], "msg": "bad", "type": "int"}])

    monkeypatch.setattr(evaluations_service, "submit", fake_submit)
    as_user(STUDENT)

    resp = client.post("/evaluations/ev-1/responses", json={"answers": "x"})
    assert resp.status_code == 422
    assert resp.json()["detail"]["message"] == "invalid_quiz_answers"


def test_teacher_cannot_submit_as_student(as_user):
    as_user(TEACHER)
    resp = client.post("/evaluations/ev-1/responses", json={"answers": []})
    assert resp.status_code == 403


def test_review_conflict_maps_to_409(monkeypatch, as_user):
    async def fake_review(response_id, reviewer, review):
        raise ReviewConflict("review_conflict")

    monkeypatch.setattr(challenges_service, "review", fake_review)
    as_user(TEACHER)

    resp = client.patch("/challenges/responses/r1/review", json={"score": 90})
    assert resp.status_code == 409
    assert resp.json()["detail"] == "review_conflict"


def test_platform_metrics_admin_only(as_user):
    as_user(TEACHER)
    assert client.get("/analytics/platform").status_code == 403


def test_class_metrics_not_found(monkeypatch, as_user):
    async def fake_get_class(class_id, repo=None):
        raise NotFoundError("class_not_found")

    monkeypatch.setattr(analytics_service, "get_class", fake_get_class)
    as_user(TEACHER)

    resp = client.get("/analytics/classes/nope/metrics")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "class_not_found"


def test_class_leaderboard_for_enrolled_student(monkeypatch, as_user):
    async def fake_get_class(class_id, repo=None):
        return {"id": class_id, "name": "LSC", "teacher_id": "t1"}

    async def fake_access(class_row, user, allow_enrolled=False):
        assert allow_enrolled is True

    async def fake_board(class_id, limit=None):
        return [LeaderboardEntry(student_id="stu-1", correct=3, total=4, percentage=75)][:limit]

    monkeypatch.setattr(analytics_service, "get_class", fake_get_class)
    monkeypatch.setattr(analytics_service, "ensure_class_access", fake_access)
    monkeypatch.setattr(analytics_service, "class_leaderboard", fake_board)
    as_user(STUDENT)

    resp = client.get("/analytics/classes/class-1/leaderboard?limit=5")
    assert resp.status_code == 200
    assert resp.json()[0]["percentage"] == 75


def test_leaderboard_limit_validated(as_user):
    as_user(STUDENT)
    assert client.get("/analytics/classes/class-1/leaderboard?limit=0").status_code == 422

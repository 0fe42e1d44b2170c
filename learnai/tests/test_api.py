"""
API tests for the progress engine.

The application is created around an in-memory service container seeded
with the shared test curriculum, so no database or Redis is needed.
"""

import pytest
from fastapi.testclient import TestClient

from learnai.common.error_handling import (
    DatabaseConnectionError,
    LearnAIError,
    NotFoundError,
    ValidationError,
)
from learnai.container import build_memory_container
from learnai.main import create_app, status_for

from conftest import START, FakeClock, progress_record, seed


@pytest.fixture
def services(config):
    container = build_memory_container(config, clock=FakeClock())
    seed(container.repositories)
    return container


@pytest.fixture
def client(services):
    app = create_app(container=services)
    with TestClient(app) as test_client:
        yield test_client


SESSION_BODY = {
    "problems_attempted": 5,
    "problems_correct": 4,
    "duration_minutes": 20,
    "points_earned": 10,
    "concepts": ["c-carry"],
}


def test_status_for():
    assert status_for(NotFoundError("student", "x")) == 404
    assert status_for(ValidationError("bad")) == 400
    assert status_for(DatabaseConnectionError("primary")) == 503
    assert status_for(LearnAIError("boom")) == 500


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_track_session_progress(client):
    response = client.post("/api/sessions/session-1/progress", json=SESSION_BODY)

    assert response.status_code == 200
    data = response.json()
    assert data["topic_id"] == "t-add"
    assert data["mastery_level"] == pytest.approx(24.0)
    assert data["strengths"] == ["c-carry"]
    assert data["last_practiced_at"] == START.isoformat()

    topic = client.get("/api/students/student-1/progress/t-add")
    assert topic.status_code == 200
    assert topic.json()["sessions_count"] == 1


def test_track_unknown_session(client):
    response = client.post("/api/sessions/missing/progress", json=SESSION_BODY)

    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "error"
    assert body["code"] == "session_not_found"
    assert body["details"]["resource_id"] == "missing"


def test_inconsistent_session_data(client):
    body = dict(SESSION_BODY, problems_correct=9)
    response = client.post("/api/sessions/session-1/progress", json=body)

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_malformed_request_body(client):
    response = client.post("/api/sessions/session-1/progress", json={"problems_attempted": -1})

    assert response.status_code == 422
    body = response.json()
    assert body["message"] == "Validation error"
    assert body["details"][0]["location"] == ["body", "problems_attempted"]


def test_topic_progress_not_found(client):
    response = client.get("/api/students/student-1/progress/t-add")
    assert response.status_code == 404


def test_progress_summary(client, services):
    client.post("/api/sessions/session-1/progress", json=SESSION_BODY)

    response = client.get("/api/students/student-1/progress", params={"subject_id": "math"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["total_topics"] == 1
    assert data["total_time_minutes"] == 20
    assert data["progress_records"][0]["topic"] == "Addition"


def test_streak_and_engagement(client):
    client.post("/api/sessions/session-1/progress", json=SESSION_BODY)

    streak = client.get("/api/students/student-1/streak").json()
    assert streak["current_streak"] == 1
    assert streak["milestone"]["name"] == "First Day"
    assert streak["recovery"]["can_recover"] is False

    week = client.get("/api/students/student-1/engagement").json()
    assert week["total_minutes"] == 20
    assert week["week_start"] == "2024-03-10"

    month = client.get("/api/students/student-1/engagement", params={"period": "month"}).json()
    assert month["month_start"] == "2024-03-01"

    assert client.get("/api/students/student-1/engagement", params={"period": "year"}).status_code == 422


def test_recommendations(client):
    response = client.get("/api/recommendations", params={"student_id": "student-1", "subject_id": "math"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert [r["topic_id"] for r in data["recommendations"]] == ["t-count"]
    assert data["strategies"]["learning_path"] == 1


def test_recommendations_for_unknown_student(client):
    response = client.get("/api/recommendations", params={"student_id": "ghost"})

    assert response.status_code == 404
    assert response.json()["code"] == "student_not_found"


def test_recommendations_require_student(client):
    assert client.get("/api/recommendations").status_code == 422


@pytest.mark.asyncio
async def test_personalized_path(client, services):
    await services.repositories.progress.save(progress_record("t-count", 90))

    response = client.get("/api/recommendations/path", params={"student_id": "student-1"})

    assert response.status_code == 200
    data = response.json()
    assert data["learning_path"][0]["topic_id"] == "t-add"
    assert set(data["by_subject"]) == {"math"}


@pytest.mark.asyncio
async def test_adaptive_path(client, services):
    await services.repositories.progress.save(progress_record("t-count", 90))
    await services.repositories.progress.save(progress_record("t-add", 75))

    response = client.get("/api/learning/adaptive-path", params={
        "student_id": "student-1", "subject_id": "math", "current_topic_id": "t-add",
    })

    assert response.status_code == 200
    data = response.json()
    assert data["current"]["id"] == "t-add"
    assert data["next"][0]["topic"]["id"] == "t-sub"
    assert [t["id"] for t in data["completed"]] == ["t-count"]


def test_adaptive_path_visualization(client):
    response = client.get("/api/learning/adaptive-path", params={
        "student_id": "student-1", "subject_id": "math", "action": "visualization",
    })

    assert response.status_code == 200
    data = response.json()
    assert len(data["nodes"]) == 6
    assert data["current"] == "t-count"


def test_adaptive_path_unknown_topic(client):
    response = client.get("/api/learning/adaptive-path", params={
        "student_id": "student-1", "subject_id": "math", "current_topic_id": "t-nope",
    })
    assert response.status_code == 404


def test_adjust_adaptive_path(client):
    response = client.post("/api/learning/adaptive-path", json={
        "student_id": "student-1", "topic_id": "t-add", "accuracy": 0.4, "attempts": 2,
    })

    assert response.status_code == 200
    data = response.json()
    assert data["performance_analysis"]["is_struggling"] is True
    assert data["recommendations"][0]["type"] == "remediation"
    assert data["adjusted_at"] == START.isoformat()


def test_adjust_adaptive_path_rejects_accuracy_out_of_range(client):
    response = client.post("/api/learning/adaptive-path", json={
        "student_id": "student-1", "topic_id": "t-add", "accuracy": 1.5,
    })
    assert response.status_code == 422


def test_record_review(client):
    response = client.post("/api/learning/spaced-repetition", json={
        "student_id": "student-1", "concept_id": "c-carry", "quality": 4, "subject_id": "math",
    })

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["review"]["interval"] == 1
    assert data["mastery"] == 63

    schedule = client.get("/api/learning/spaced-repetition", params={
        "student_id": "student-1", "action": "schedule", "concept_id": "c-carry",
    }).json()
    assert schedule["is_new"] is False
    assert schedule["days_until_review"] == 1

    stats = client.get("/api/learning/spaced-repetition", params={
        "student_id": "student-1", "action": "statistics",
    }).json()
    assert stats["total_concepts"] == 1


def test_record_review_requires_quality(client):
    response = client.post("/api/learning/spaced-repetition", json={
        "student_id": "student-1", "concept_id": "c-carry",
    })
    assert response.status_code == 400


def test_schedule_initial_review(client):
    response = client.post("/api/learning/spaced-repetition", json={
        "action": "schedule", "student_id": "student-1", "concept_id": "c-zero",
    })

    assert response.status_code == 200
    review = response.json()["review"]
    assert review["concept_id"] == "c-zero"
    assert review["ease_factor"] == pytest.approx(2.36)


def test_schedule_action_requires_concept(client):
    response = client.get("/api/learning/spaced-repetition", params={
        "student_id": "student-1", "action": "schedule",
    })
    assert response.status_code == 400


def test_due_concepts(client):
    response = client.get("/api/learning/spaced-repetition", params={"student_id": "student-1"})

    assert response.status_code == 200
    assert response.json()["concepts"] == []


def test_error_responses_are_documented(client):
    schema = client.get("/openapi.json").json()
    operation = schema["paths"]["/api/recommendations"]["get"]
    assert {"400", "404", "503"} <= set(operation["responses"])

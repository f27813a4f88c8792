"""
Unit tests for the progress and health API endpoints.

The progress repository dependency is overridden with the in-memory
adapter, so no database is needed.
"""

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_progress_repository
from app.main import create_app
from app.middleware.error_handling import PersistenceError
from app.models.base import ErrorDetail
from app.services.progress import InMemoryProgressRepository


@pytest.fixture
def repo() -> InMemoryProgressRepository:
    return InMemoryProgressRepository()


@pytest.fixture
def client(repo):
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_progress_repository] = lambda: repo
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ===========================================
# Health
# ===========================================


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness_uses_database(self, client):
        response = client.get("/api/health/ready")

        assert response.status_code == 200
        assert response.json() == {"ready": True}


# ===========================================
# Session Updates
# ===========================================


class TestApplyLesson:
    def test_lesson_is_committed(self, client, lesson_payload):
        response = client.post("/api/progress/user-1/lessons", json=lesson_payload)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "committed"
        assert body["progress"]["overall_score"] == 56
        assert body["progress"]["learning_trajectory"] == "accelerating"
        assert body["topics_updated"] == 2
        assert body["words_updated"] == 2

    def test_invalid_body_is_422(self, client, lesson_payload):
        lesson_payload["steps"][0]["step_type"] = "dance"
        response = client.post("/api/progress/user-1/lessons", json=lesson_payload)

        assert response.status_code == 422

    def test_blank_user_is_rejected(self, client, lesson_payload):
        response = client.post("/api/progress/%20/lessons", json=lesson_payload)

        assert response.status_code == 422
        assert response.json()["status"] == "rejected"


class TestApplyAssessment:
    def test_assessment_is_committed(self, client):
        payload = {
            "id": "a-1",
            "proposed_topics": ["Food"],
            "steps": [
                {"id": "q1", "step_type": "question", "expected_answer": "pan", "attempts": 1, "correct": True}
            ],
            "metrics": {"overall_score": 75},
            "audio_metrics": {"overall_performance": 90, "proficiency_level": "B1"},
        }
        response = client.post("/api/progress/user-1/assessments", json=payload)

        assert response.status_code == 200
        body = response.json()
        assert body["session_kind"] == "assessment"
        assert body["progress"]["overall_score"] == 63
        assert body["progress"]["estimated_proficiency_level"] == "intermediate"


class TestUpdateFailure:
    def test_storage_failure_is_503(self, client, repo, lesson_payload):
        async def broken(*args, **kwargs):
            raise PersistenceError("database unavailable")

        repo.get_aggregate = broken
        response = client.post("/api/progress/user-1/lessons", json=lesson_payload)

        assert response.status_code == 503
        assert response.json()["status"] == "failed"


# ===========================================
# Read Side
# ===========================================


class TestReadEndpoints:
    def test_unknown_user_is_404(self, client):
        for path in ("/api/progress/nobody", "/api/progress/nobody/summary"):
            response = client.get(path)
            assert response.status_code == 404
            assert response.json()["error"] == "not_found"
            assert ErrorDetail.model_validate(response.json()).error_id

    def test_progress_and_summary(self, client, lesson_payload):
        client.post("/api/progress/user-1/lessons", json=lesson_payload)

        progress = client.get("/api/progress/user-1").json()
        summary = client.get("/api/progress/user-1/summary", params={"topics_limit": 1}).json()

        assert progress["user_id"] == "user-1"
        assert summary["progress"]["overall_score"] == 56
        assert len(summary["topics"]) == 1
        assert {w["word"] for w in summary["words"]} == {"billete", "viajé"}

    def test_practice_words(self, client, lesson_payload):
        client.post("/api/progress/user-1/lessons", json=lesson_payload)

        response = client.get("/api/progress/user-1/practice-words")

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == "user-1"
        assert body["total"] == 2
        assert all(w["mastery_level"] == "Seen" for w in body["words"])

    def test_practice_words_unknown_user_is_empty(self, client):
        response = client.get("/api/progress/nobody/practice-words")

        assert response.status_code == 200
        assert response.json() == {"user_id": "nobody", "words": [], "total": 0}

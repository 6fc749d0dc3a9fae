# =============================================================================
# INTEGRATION TESTS - HTTP endpoints
# =============================================================================
# FastAPI TestClient with the quiz service and usage ledger overridden
# =============================================================================

import pytest


@pytest.fixture
def quiz_service(happy_script, no_sleep):
    from conftest import ScriptedGateway

    from quizforge.pipeline import QuizPipeline
    from quizforge.service import QuizService
    from quizforge.session_store import InMemorySessionStore

    gateway = ScriptedGateway(happy_script)
    gateway.queue("practice_questions", '["Why is the sky blue?", "How do tides work?"]')
    return QuizService(gateway, InMemorySessionStore(), pipeline=QuizPipeline(gateway, sleep=no_sleep))


@pytest.fixture
def usage_tracker():
    from sqlalchemy.orm import sessionmaker

    from quizforge import models  # noqa: F401  registers tables
    from quizforge.db import Base, make_engine
    from quizforge.usage import UsageTracker

    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield UsageTracker(sessionmaker(bind=engine, future=True))
    engine.dispose()


@pytest.fixture
def client(quiz_service, usage_tracker):
    """Test client; startup hooks are not run so no real gateway is built."""
    from fastapi.testclient import TestClient

    from quizforge.main import app
    from quizforge.routers.quiz import get_quiz_service
    from quizforge.routers.usage import get_usage_tracker

    app.dependency_overrides[get_quiz_service] = lambda: quiz_service
    app.dependency_overrides[get_usage_tracker] = lambda: usage_tracker
    yield TestClient(app)
    app.dependency_overrides.clear()


def _generate(client, **overrides):
    body = {"topic": "General knowledge", "difficulty": "beginner", "question_count": 3}
    body.update(overrides)
    return client.post("/quiz/generate", json=body)


class TestInfo:
    """GET /info"""

    def test_status_ok(self, client):
        response = client.get("/info")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "gemini_configured" in data


class TestGenerateEndpoint:
    """POST /quiz/generate"""

    def test_returns_sanitized_questions(self, client):
        response = _generate(client)

        assert response.status_code == 200
        data = response.json()
        assert len(data["questions"]) == 3
        assert data["time_limit_seconds"] == 600
        assert set(data["questions"][0]) == {"text", "options", "difficulty"}
        assert "correct_answer_index" not in response.text
        assert "explanation" not in response.text

    def test_user_id_from_header(self, client, quiz_service):
        import asyncio

        response = client.post(
            "/quiz/generate",
            json={"topic": "General knowledge", "question_count": 3},
            headers={"X-User-Id": "header-user"},
        )

        assert response.status_code == 200
        stored = asyncio.run(quiz_service.store.get(response.json()["session_id"]))
        assert stored["user_id"] == "header-user"
        assert stored["difficulty"] == "intermediate"

    def test_rejects_out_of_range_count(self, client):
        response = _generate(client, question_count=50)

        assert response.status_code == 422

    def test_pipeline_failure_is_generic_502(self, client, quiz_service):
        quiz_service.gateway.script["draft_questions"] = ['["only one"]'] * 3

        response = _generate(client)

        assert response.status_code == 502
        assert "draft_questions" not in response.text


class TestSubmitEndpoint:
    """POST /quiz/submit"""

    def test_grades_and_is_single_use(self, client):
        quiz = _generate(client).json()
        body = {
            "session_id": quiz["session_id"],
            "session_hash": quiz["session_hash"],
            "user_answers": [0, None, 2],
        }

        first = client.post("/quiz/submit", json=body)
        second = client.post("/quiz/submit", json=body)

        assert first.status_code == 200
        result = first.json()
        assert result["correct_count"] == 2
        assert result["score_percent"] == 67
        assert result["mistakes"] == [{"question_index": 1, "user_answer_index": None, "correct_answer_index": 0}]
        assert second.status_code == 404
        assert second.json()["detail"] == {"message": "session not found"}

    def test_tampered_binding(self, client):
        quiz = _generate(client).json()

        response = client.post(
            "/quiz/submit",
            json={
                "session_id": quiz["session_id"],
                "session_hash": quiz["session_hash"],
                "start_time": quiz["start_time"] - 60_000,
                "user_answers": [0, 0, 2],
            },
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["message"] == "invalid submission"
        assert "Invalid quiz session" in detail["errors"]

    def test_malformed_answers_collected(self, client):
        quiz = _generate(client).json()

        response = client.post(
            "/quiz/submit",
            json={"session_id": quiz["session_id"], "session_hash": quiz["session_hash"], "user_answers": "abc"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["errors"] == ["Invalid answer format"]

    def test_unknown_session(self, client):
        response = client.post(
            "/quiz/submit", json={"session_id": "nope", "session_hash": "x", "user_answers": [0]}
        )

        assert response.status_code == 404


class TestSessionsEndpoint:
    """GET /quiz/sessions"""

    def test_lists_callers_sessions(self, client):
        quiz = client.post(
            "/quiz/generate",
            json={"topic": "General knowledge", "question_count": 3},
            headers={"X-User-Id": "alice"},
        ).json()

        mine = client.get("/quiz/sessions", headers={"X-User-Id": "alice"})
        theirs = client.get("/quiz/sessions", headers={"X-User-Id": "bob"})

        assert mine.status_code == 200
        assert [s["session_id"] for s in mine.json()] == [quiz["session_id"]]
        assert "session_hash" not in mine.json()[0]
        assert theirs.json() == []

    def test_requires_user_header(self, client):
        assert client.get("/quiz/sessions").status_code == 422


class TestPracticeEndpoint:
    """POST /quiz/practice-questions"""

    def test_returns_questions(self, client):
        response = client.post("/quiz/practice-questions", json={"topic": "Oceans"})

        assert response.status_code == 200
        assert response.json()["questions"] == ["Why is the sky blue?", "How do tides work?"]


class TestUsageEndpoint:
    """GET /usage/summary"""

    def test_summary(self, client, usage_tracker):
        usage_tracker.record("gemini-2.5-flash", "generate_options", 100, 20)

        response = client.get("/usage/summary", params={"days": 7})

        assert response.status_code == 200
        data = response.json()
        assert data["days"] == 7
        assert data["total_calls"] == 1

    def test_days_bounds(self, client):
        assert client.get("/usage/summary", params={"days": 0}).status_code == 422


class TestServiceNotReady:
    """Dependencies before startup."""

    def test_quiz_service_missing(self):
        from fastapi.testclient import TestClient

        from quizforge.main import app

        app.dependency_overrides.clear()
        response = TestClient(app).post("/quiz/submit", json={"session_id": "a", "session_hash": "b", "user_answers": []})

        assert response.status_code == 503

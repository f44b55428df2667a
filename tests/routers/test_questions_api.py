"""Tests for the question endpoint."""

import random

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from reflect.main import app
from reflect.models.schema import MeDb
from reflect.services.questions import QuestionService, get_question_service


def use_runner(runner) -> None:
    service = QuestionService(model_spec="openai:test-model", rng=random.Random(11), runner=runner)
    app.dependency_overrides[get_question_service] = lambda: service


def next_body(**overrides) -> dict:
    body = {
        "mode": "next",
        "draftText": "Work was long today. I finally finished the report.",
        "recentText": "I finally finished the report.",
        "lastQuestion": "How was your day?",
        "questionHistory": [{"text": "How was your day?", "kind": "default", "status": "answered"}],
    }
    body.update(overrides)
    return body


def test_missing_fields_return_400(client: TestClient, fake_runner) -> None:
    use_runner(fake_runner())

    assert client.post("/api/questions", json={"draftText": "a", "recentText": "b"}).status_code == 400
    assert client.post("/api/questions", json={"mode": "next", "draftText": "", "recentText": "b"}).status_code == 400
    response = client.post("/api/questions", json={"mode": "validate", "draftText": "a", "recentText": "b"})
    assert response.status_code == 400
    assert response.json()["detail"] == "lastQuestion is required for validation."


def test_unknown_mode_is_rejected(client: TestClient, fake_runner) -> None:
    use_runner(fake_runner())
    response = client.post("/api/questions", json=next_body(mode="shout"))
    assert response.status_code == 422


def test_validate(client: TestClient, fake_runner) -> None:
    use_runner(fake_runner('{"answered": true, "confidence": 0.85, "reason": "describes the day"}'))

    response = client.post("/api/questions", json=next_body(mode="validate"))

    assert response.status_code == 200
    assert response.json() == {
        "answered": True,
        "answerConfidence": 0.85,
        "nextQuestion": None,
        "reason": "describes the day",
        "fallbackUsed": False,
    }


def test_validate_model_failure_fails_closed(client: TestClient, fake_runner) -> None:
    use_runner(fake_runner(RuntimeError("upstream down")))

    data = client.post("/api/questions", json=next_body(mode="validate")).json()

    assert data["answered"] is False
    assert data["answerConfidence"] == 0
    assert data["reason"] == "openai_error"
    assert data["fallbackUsed"] is True


def test_next_generated(client: TestClient, fake_runner) -> None:
    use_runner(fake_runner("What made finishing it feel good?"))

    response = client.post("/api/questions", json=next_body())

    assert response.status_code == 200
    data = response.json()
    assert data["nextQuestion"] == {
        "text": "What made finishing it feel good?",
        "coverageTag": "auto",
        "kind": "follow_up",
    }
    assert data["reason"] == "generated"
    assert data["fallbackUsed"] is False
    assert data["answered"] is False


def test_next_honours_preferred_kind(client: TestClient, fake_runner) -> None:
    use_runner(fake_runner("What else happened today?"))
    data = client.post("/api/questions", json=next_body(preferredKind="new_topic")).json()
    assert data["nextQuestion"]["kind"] == "new_topic"


def test_next_uses_stored_avoid_topics(client: TestClient, db_session: Session, test_user, fake_runner) -> None:
    db_session.add(
        MeDb(
            user_id=test_user.id,
            profile_json={"avoidTopics": "report"},
            state_json={"memory_notes": ["Prefers short prompts."]},
            patterns_json={},
            trust_json={},
        )
    )
    db_session.commit()
    runner = fake_runner("How did the report go?")
    use_runner(runner)

    data = client.post(
        "/api/questions",
        json=next_body(profile={"tone": "gentle", "avoidTopics": ["Family", 7]}),
    ).json()

    assert data["reason"] == "fallback_default"
    assert data["fallbackUsed"] is True
    assert "report" not in data["nextQuestion"]["text"].lower()
    assert "Topics to avoid: report, family." in runner.last_prompt
    assert "- Prefers short prompts." in runner.last_prompt


def test_health(client: TestClient) -> None:
    assert client.get("/health").json()["status"] == "ok"

"""Tests for the profile memory endpoint."""

import json

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from reflect.main import app
from reflect.models.schema import MeDb
from reflect.services.profile_memory import ProfileMemoryService, get_profile_memory_service

BODY = {
    "sessionId": "session-42",
    "transcript": "Please stop asking me about work. Also, call me Sam.",
    "summary": {"headline": "Setting boundaries", "bullets": ["Work is off limits.", "Goes by Sam."]},
}


def use_runner(runner) -> None:
    service = ProfileMemoryService(model_spec="openai:test-model", runner=runner)
    app.dependency_overrides[get_profile_memory_service] = lambda: service


def test_missing_fields_return_400(client: TestClient, fake_runner) -> None:
    use_runner(fake_runner())
    for field in ("sessionId", "transcript", "summary"):
        body = {key: value for key, value in BODY.items() if key != field}
        assert client.post("/api/profile-memory", json=body).status_code == 400


def test_profile_is_updated_once_per_session(client: TestClient, db_session: Session, test_user, fake_runner) -> None:
    db_session.add(
        MeDb(
            user_id=test_user.id,
            profile_json={"avoidTopics": "work,health"},
            state_json={},
            patterns_json={},
            trust_json={},
        )
    )
    db_session.commit()
    runner = fake_runner(
        json.dumps(
            {
                "shouldUpdate": True,
                "profilePatch": {
                    "displayName": "Sam",
                    "avoidTopicsAdd": ["work", "friends", "friends", "too many words here now"],
                    "avoidTopicsRemove": ["health"],
                    "notesAppend": "x" * 400,
                },
            }
        )
    )
    use_runner(runner)

    response = client.post("/api/profile-memory", json=BODY)

    assert response.status_code == 200
    assert response.json() == {
        "applied": True,
        "reason": "updated",
        "updatedProfile": {
            "displayName": "Sam",
            "tone": "balanced",
            "proactivity": "medium",
            "avoidTopics": ["work", "friends"],
        },
        "sessionId": "session-42",
    }
    row = db_session.get(MeDb, test_user.id)
    db_session.refresh(row)
    assert row.profile_json["avoidTopics"] == "work,friends"
    assert row.state_json["memory_notes"] == ["x" * 220]

    again = client.post("/api/profile-memory", json=BODY).json()
    assert again["applied"] is True
    assert again["reason"] == "duplicate_session"
    assert again["updatedProfile"]["displayName"] == "Sam"
    assert len(runner.calls) == 1


def test_model_failure_is_reported_not_raised(client: TestClient, db_session: Session, test_user, fake_runner) -> None:
    use_runner(fake_runner(RuntimeError("upstream down")))

    response = client.post("/api/profile-memory", json=BODY)

    assert response.status_code == 200
    assert response.json()["applied"] is False
    assert response.json()["reason"] == "openai_error"
    assert db_session.get(MeDb, test_user.id) is None

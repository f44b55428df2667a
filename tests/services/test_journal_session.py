"""Tests for the live journaling session runner."""

import asyncio
import random

import httpx
import pytest

from reflect.core.settings import get_settings
from reflect.http_client.questions_client import HttpQuestionClient
from reflect.main import app
from reflect.models.contracts import QuestionKind, QuestionReason, QuestionStatus
from reflect.services.question_pool import CURATED_QUESTIONS
from reflect.services.questions import (
    NextQuestion,
    NextQuestionParams,
    QuestionPayload,
    QuestionService,
    RequestProfile,
    ValidationOutcome,
    get_question_service,
)
from reflect.services.journal_session import (
    AudioLevel,
    JournalSession,
    LocalQuestionBackend,
    Tick,
    TranscriptUpdate,
    UserAction,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeBackend:
    def __init__(self, validations=(), questions=(), release: asyncio.Event | None = None) -> None:
        self.validations = list(validations)
        self.questions = list(questions)
        self.release = release
        self.validate_calls: list[tuple[str, str, str]] = []
        self.next_calls: list[NextQuestionParams] = []

    async def validate_answer(self, question, recent_text, draft_text):
        self.validate_calls.append((question, recent_text, draft_text))
        outcome = self.validations.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def next_question(self, params):
        self.next_calls.append(params)
        if self.release is not None:
            await self.release.wait()
        payload = self.questions.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return payload


def generated(text: str, kind: QuestionKind) -> QuestionPayload:
    return QuestionPayload(
        next_question=NextQuestion(text=text, coverage_tag="auto", kind=kind),
        reason=QuestionReason.GENERATED,
        fallback_used=False,
    )


def make_session(backend, events, **kwargs) -> JournalSession:
    async def emit(event):
        events.append(event)

    return JournalSession(
        session_id="session-1",
        backend=backend,
        emit_event=emit,
        clock=kwargs.pop("clock", FakeClock()),
        rng=random.Random(5),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_start_shows_first_question():
    events: list[dict] = []
    session = make_session(FakeBackend(), events)

    question = await session.start()

    assert question.text == "How was your day?"
    assert events[0]["type"] == "question.shown"
    assert events[0]["question"]["text"] == "How was your day?"
    assert events[0]["reason"] == "initial"


@pytest.mark.asyncio
async def test_answer_is_validated_then_followed_up():
    events: list[dict] = []
    backend = FakeBackend(
        validations=[ValidationOutcome(answered=True, confidence=0.9, reason="clear")],
        questions=[generated("What made it good?", QuestionKind.FOLLOW_UP)],
    )
    session = make_session(backend, events)
    await session.start()

    await session.handle_event(TranscriptUpdate(("It was busy but good.",), "", 12.0))
    await session.wait_for_pending()

    assert [event["type"] for event in events] == ["question.shown", "question.validated", "question.shown"]
    assert backend.validate_calls == [("How was your day?", "It was busy but good.", "It was busy but good.")]
    params = backend.next_calls[0]
    assert params.preferred_kind == QuestionKind.FOLLOW_UP
    assert params.last_question == "How was your day?"
    assert params.history[0].status == QuestionStatus.ANSWERED
    assert events[-1]["question"]["text"] == "What made it good?"
    assert session.gate.current_question.text == "What made it good?"


@pytest.mark.asyncio
async def test_unpunctuated_text_is_never_validated():
    events: list[dict] = []
    backend = FakeBackend()
    session = make_session(backend, events)
    await session.start()

    await session.handle_event(TranscriptUpdate(("so i went to the store and",), "then", 12.0))
    await session.handle_event(AudioLevel(0.0, 12.0))
    for second in range(13, 60):
        await session.handle_event(Tick(float(second)))

    assert backend.validate_calls == []
    assert not session.has_pending_call


@pytest.mark.asyncio
async def test_validation_failure_keeps_question():
    events: list[dict] = []
    backend = FakeBackend(validations=[RuntimeError("offline")])
    session = make_session(backend, events)
    await session.start()

    await session.handle_event(TranscriptUpdate(("It was busy but good.",), "", 12.0))
    await session.wait_for_pending()

    assert events[-1]["type"] == "question.validated"
    assert events[-1]["answered"] is False
    assert events[-1]["reason"] == "openai_error"
    assert backend.next_calls == []
    assert session.gate.current_question.status == QuestionStatus.SHOWN


@pytest.mark.asyncio
async def test_backend_failure_shows_local_fallback():
    events: list[dict] = []
    backend = FakeBackend(questions=[RuntimeError("offline")])
    session = make_session(backend, events, profile=RequestProfile.from_raw(avoid_topics=["body"]))
    await session.start()

    await session.handle_event(TranscriptUpdate((), "work ran late", 2.5))
    await session.handle_event(UserAction("refresh", 3.0))
    await session.wait_for_pending()

    assert events[1] == {"type": "question.ignored", "questionId": events[0]["question"]["id"]}
    shown = events[-1]
    assert shown["type"] == "question.shown"
    assert shown["reason"] == "openai_error"
    assert shown["fallbackUsed"] is True
    assert shown["question"]["kind"] == "new_topic"
    assert shown["question"]["text"] in {template.text for template in CURATED_QUESTIONS}
    assert "body" not in shown["question"]["text"].lower()


@pytest.mark.asyncio
async def test_result_after_completion_is_discarded():
    events: list[dict] = []
    release = asyncio.Event()
    backend = FakeBackend(questions=[generated("What else?", QuestionKind.NEW_TOPIC)], release=release)
    session = make_session(backend, events)
    await session.start()

    await session.handle_event(TranscriptUpdate((), "work ran late", 2.5))
    await session.handle_event(UserAction("refresh", 3.0))
    assert session.has_pending_call
    await session.handle_event(UserAction("complete", 4.0))
    release.set()
    await session.wait_for_pending()

    assert events[-1] == {"type": "session.completed", "sessionId": "session-1"}
    assert [event["type"] for event in events].count("question.shown") == 1
    assert len(session.gate.history) == 1


@pytest.mark.asyncio
async def test_run_consumes_queued_events():
    events: list[dict] = []
    backend = FakeBackend(questions=[generated("What else is on your mind?", QuestionKind.NEW_TOPIC)])
    session = make_session(backend, events)
    await session.start()

    session.submit(UserAction("dismiss", 2.0))
    session.submit(TranscriptUpdate((), "work ran late", 2.5))
    session.submit(UserAction("refresh", 3.0))
    session.stop()
    await session.run()
    await session.wait_for_pending()

    assert [event["type"] for event in events] == ["question.shown", "question.ignored", "question.shown"]
    assert events[-1]["question"]["text"] == "What else is on your mind?"


@pytest.mark.asyncio
async def test_run_stops_on_completion():
    events: list[dict] = []
    session = make_session(FakeBackend(), events)
    await session.start()

    session.submit(UserAction("complete", 2.0))
    await asyncio.wait_for(session.run(), timeout=1)

    assert session.gate.is_completed
    assert events[-1]["type"] == "session.completed"


@pytest.mark.asyncio
async def test_close_cancels_outstanding_call():
    events: list[dict] = []
    backend = FakeBackend(questions=[generated("Never shown?", QuestionKind.NEW_TOPIC)], release=asyncio.Event())
    session = make_session(backend, events)
    await session.start()

    await session.handle_event(TranscriptUpdate((), "work ran late", 2.5))
    await session.handle_event(UserAction("refresh", 3.0))
    await asyncio.sleep(0)
    await session.close()

    assert not session.has_pending_call
    assert [event["type"] for event in events].count("question.shown") == 1


@pytest.mark.asyncio
async def test_local_backend_runs_question_service(fake_runner):
    runner = fake_runner('{"answered": true, "confidence": 0.7, "reason": "ok"}', "What helped most")
    backend = LocalQuestionBackend(QuestionService(model_spec="openai:test-model", runner=runner))

    outcome = await backend.validate_answer("How was your day?", "It was good.", "It was good.")
    payload = await backend.next_question(
        NextQuestionParams(draft_text="It was good.", recent_text="It was good.", preferred_kind=QuestionKind.FOLLOW_UP)
    )

    assert outcome.answered is True
    assert payload.next_question.text == "What helped most?"
    assert payload.next_question.kind == QuestionKind.FOLLOW_UP


@pytest.mark.asyncio
async def test_partial_line_is_sent_as_draft():
    events: list[dict] = []
    backend = FakeBackend(questions=[generated("What is on your mind?", QuestionKind.NEW_TOPIC)])
    session = make_session(backend, events)

    await session.handle_event(TranscriptUpdate((), "so today I", 11.0))
    await session.handle_event(AudioLevel(0.0, 12.0))
    await session.handle_event(Tick(17.0))
    await session.wait_for_pending()

    params = backend.next_calls[0]
    assert params.draft_text == "so today I"
    assert params.recent_text == "so today I"
    assert events[-1]["reason"] == "generated"


@pytest.mark.asyncio
async def test_silence_before_any_speech_uses_local_pool():
    events: list[dict] = []
    backend = FakeBackend()
    session = make_session(backend, events)

    await session.handle_event(AudioLevel(0.0, 11.0))
    await session.handle_event(Tick(16.0))
    await session.wait_for_pending()

    assert backend.next_calls == []
    shown = events[-1]
    assert shown["type"] == "question.shown"
    assert shown["reason"] == "fallback_default"
    assert shown["fallbackUsed"] is True
    assert shown["question"]["text"] in {template.text for template in CURATED_QUESTIONS}
    assert session.gate.state.is_question_displayed


@pytest.mark.asyncio
async def test_voice_activity_threshold_comes_from_settings(monkeypatch):
    monkeypatch.setattr(get_settings(), "voice_activity_threshold", 0.1)
    events: list[dict] = []
    session = make_session(FakeBackend(), events)

    assert session.gate.voice_activity_threshold == 0.1

    # Quiet breathing below the configured threshold counts as silence.
    await session.handle_event(AudioLevel(0.05, 11.0))
    await session.handle_event(Tick(16.0))
    await session.wait_for_pending()

    assert events[-1]["reason"] == "fallback_default"


@pytest.mark.asyncio
async def test_silence_request_is_answered_by_question_endpoint(client, fake_runner):
    runner = fake_runner("What finally got the report done")
    service = QuestionService(model_spec="openai:test-model", rng=random.Random(11), runner=runner)
    app.dependency_overrides[get_question_service] = lambda: service
    backend = HttpQuestionClient(
        token="test-token",
        url="http://testserver/api/questions",
        transport=httpx.ASGITransport(app=app),
    )
    events: list[dict] = []
    session = make_session(backend, events)

    await session.handle_event(TranscriptUpdate((), "so the report is finally", 11.0))
    await session.handle_event(AudioLevel(0.0, 12.0))
    await session.handle_event(Tick(17.0))
    await session.wait_for_pending()

    assert len(runner.calls) == 1
    assert "so the report is finally" in runner.last_prompt
    shown = events[-1]
    assert shown["reason"] == "generated"
    assert shown["fallbackUsed"] is False
    assert shown["question"]["text"] == "What finally got the report done?"

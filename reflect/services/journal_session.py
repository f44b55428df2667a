"""Cooperative runner for one live journaling session.

Events (audio levels, transcript updates, user actions) are consumed one at a
time and fed to the ``TriggerGate``. A gate action starts a single background
task against a ``QuestionBackend``; the gate itself guarantees there is never
more than one outstanding. When the task finishes, its result is applied only
if the session is still the same one and has not been completed.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from reflect.core.logging import get_logger
from reflect.core.settings import get_settings
from reflect.models.contracts import DEFAULT_PROACTIVITY, QuestionKind, QuestionReason
from reflect.models.questions import FIRST_QUESTION, QuestionItem
from reflect.services.question_pool import QuestionPool, pick_fallback_question
from reflect.services.questions import (
    HistoryItem,
    NextQuestionParams,
    ProfileContext,
    QuestionPayload,
    QuestionService,
    RecentSession,
    RequestProfile,
    ValidationOutcome,
    failed_validation,
)
from reflect.services.trigger_gate import (
    GateAction,
    RequestNextQuestion,
    TriggerGate,
    ValidateAnswer,
)
from reflect.utils.error_logger import log_error

logger = get_logger(__name__)

EventEmitter = Callable[[dict[str, Any]], Awaitable[None]]


class QuestionBackend(Protocol):
    async def validate_answer(self, question: str, recent_text: str, draft_text: str) -> ValidationOutcome: ...

    async def next_question(self, params: NextQuestionParams) -> QuestionPayload: ...


class LocalQuestionBackend:
    """Runs the synchronous ``QuestionService`` in a worker thread."""

    def __init__(self, service: QuestionService, context: ProfileContext | None = None) -> None:
        self.service = service
        self.context = context

    async def validate_answer(self, question: str, recent_text: str, draft_text: str) -> ValidationOutcome:
        return await asyncio.to_thread(self.service.validate_answer, question, recent_text)

    async def next_question(self, params: NextQuestionParams) -> QuestionPayload:
        return await asyncio.to_thread(self.service.request_next_question, params, self.context)


@dataclass(frozen=True)
class AudioLevel:
    level: float
    at: float


@dataclass(frozen=True)
class TranscriptUpdate:
    committed_lines: tuple[str, ...]
    current_line: str
    at: float


@dataclass(frozen=True)
class Tick:
    at: float


@dataclass(frozen=True)
class UserAction:
    action: Literal["refresh", "dismiss", "complete"]
    at: float


SessionEvent = AudioLevel | TranscriptUpdate | Tick | UserAction


def _question_event(question: QuestionItem, reason: str, fallback_used: bool) -> dict[str, Any]:
    return {
        "type": "question.shown",
        "question": {
            "id": question.id,
            "text": question.text,
            "coverageTag": question.coverage_tag,
            "kind": question.kind.value,
            "askedAt": question.asked_at.isoformat(),
        },
        "reason": reason,
        "fallbackUsed": fallback_used,
    }


class JournalSession:
    """Stateful runner for one journaling session."""

    def __init__(
        self,
        *,
        session_id: str,
        backend: QuestionBackend,
        emit_event: EventEmitter,
        profile: RequestProfile | None = None,
        recent_sessions: Sequence[RecentSession] = (),
        pool: QuestionPool | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        gate: TriggerGate | None = None,
        voice_activity_threshold: float | None = None,
    ) -> None:
        self.session_id = session_id
        self.backend = backend
        self.profile = profile or RequestProfile()
        self.recent_sessions = tuple(recent_sessions)
        self.pool = pool or QuestionPool()
        self.rng = rng or random.Random()
        self._emit_event = emit_event
        self._clock = clock
        if voice_activity_threshold is None:
            voice_activity_threshold = get_settings().voice_activity_threshold
        self.gate = gate or TriggerGate(
            started_at=clock(),
            proactivity=self.profile.proactivity or DEFAULT_PROACTIVITY,
            voice_activity_threshold=voice_activity_threshold,
        )
        self._events: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._pending: asyncio.Task[None] | None = None
        self._committed_lines: list[str] = []
        self._current_line = ""
        # Bumped on completion so late results from the old session are dropped.
        self._epoch = 0

    @property
    def draft_text(self) -> str:
        """Everything said so far, including the line still being transcribed."""
        lines = [*self._committed_lines, self._current_line]
        return " ".join(line.strip() for line in lines if line.strip())

    @property
    def has_pending_call(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def start(self) -> QuestionItem:
        """Show the opening question."""
        question = QuestionItem.from_template(FIRST_QUESTION)
        self.gate.question_shown(question, self._clock())
        await self._emit_event(_question_event(question, "initial", False))
        return question

    def submit(self, event: SessionEvent) -> None:
        """Queue an event for ``run``; safe to call from producer callbacks on the loop."""
        self._events.put_nowait(event)

    def stop(self) -> None:
        """Ask ``run`` to return once queued events are processed."""
        self._events.put_nowait(None)

    async def run(self) -> None:
        """Consume events until stopped or completed."""
        while True:
            event = await self._events.get()
            if event is None:
                break
            await self.handle_event(event)
            if self.gate.is_completed:
                break

    async def handle_event(self, event: SessionEvent) -> None:
        action: GateAction | None = None
        if isinstance(event, AudioLevel):
            action = self.gate.on_audio_level(event.level, event.at)
        elif isinstance(event, TranscriptUpdate):
            self._committed_lines = list(event.committed_lines)
            self._current_line = event.current_line
            action = self.gate.on_transcript(event.committed_lines, event.current_line, event.at)
        elif isinstance(event, Tick):
            action = self.gate.tick(event.at)
        elif event.action == "refresh":
            current = self._displayed_question()
            action = self.gate.refresh(event.at)
            if action is not None and current is not None:
                await self._emit_event({"type": "question.ignored", "questionId": current.id})
        elif event.action == "dismiss":
            current = self._displayed_question()
            self.gate.dismiss()
            if current is not None:
                await self._emit_event({"type": "question.ignored", "questionId": current.id})
        else:
            await self.complete()

        if action is not None:
            self._start(action)

    async def complete(self) -> None:
        """Complete the session; any outstanding result will be discarded."""
        if self.gate.is_completed:
            return
        self.gate.complete()
        self._epoch += 1
        await self._emit_event({"type": "session.completed", "sessionId": self.session_id})

    async def wait_for_pending(self) -> None:
        if self._pending is not None:
            await self._pending

    async def close(self) -> None:
        """Cancel any outstanding call; its result would be discarded anyway."""
        if self.has_pending_call:
            assert self._pending is not None
            self._pending.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pending
        self._pending = None

    def _start(self, action: GateAction) -> None:
        if self.has_pending_call:
            logger.warning("Gate produced an action while a call was outstanding; dropping it")
            return
        self._pending = asyncio.create_task(self._perform(action, self._epoch))

    def _displayed_question(self) -> QuestionItem | None:
        if self.gate.is_completed or not self.gate.state.is_question_displayed:
            return None
        return self.gate.current_question

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch and not self.gate.is_completed

    async def _perform(self, action: GateAction, epoch: int) -> None:
        next_action: GateAction | None = action
        while next_action is not None:
            if isinstance(next_action, ValidateAnswer):
                next_action = await self._validate(next_action, epoch)
            else:
                await self._request_next(next_action, epoch)
                next_action = None

    async def _validate(self, action: ValidateAnswer, epoch: int) -> GateAction | None:
        question = self.gate.current_question
        if question is None:
            self.gate.generation_failed()
            return None

        try:
            outcome = await self.backend.validate_answer(question.text, action.recent_text, self.draft_text)
        except Exception as exc:  # noqa: BLE001
            log_error("journal_session", exc, operation="validate_answer", session_id=self.session_id)
            outcome = failed_validation(QuestionReason.OPENAI_ERROR)

        if not self._is_current(epoch):
            logger.debug("Discarding validation result for completed session %s", self.session_id)
            return None

        await self._emit_event(
            {
                "type": "question.validated",
                "questionId": question.id,
                "answered": outcome.answered,
                "confidence": outcome.confidence,
                "reason": outcome.reason,
            }
        )
        return self.gate.validation_finished(outcome.answered, self._clock())

    async def _request_next(self, action: RequestNextQuestion, epoch: int) -> None:
        params = self._build_params(action)
        if not params.draft_text:
            # Nothing said yet, so there is no text to ground a question in.
            question = self._local_fallback(action.preferred_kind)
            await self._show(question, QuestionReason.FALLBACK_DEFAULT.value, True, epoch)
            return

        try:
            payload = await self.backend.next_question(params)
            question = QuestionItem(
                text=payload.next_question.text,
                kind=payload.next_question.kind,
                coverage_tag=payload.next_question.coverage_tag or None,
            )
            reason, fallback_used = payload.reason.value, payload.fallback_used
        except Exception as exc:  # noqa: BLE001
            log_error(
                "journal_session",
                exc,
                operation="request_next_question",
                session_id=self.session_id,
                context={"preferred_kind": action.preferred_kind.value, "trigger": action.reason.value},
            )
            question = self._local_fallback(action.preferred_kind)
            reason, fallback_used = QuestionReason.OPENAI_ERROR.value, True

        await self._show(question, reason, fallback_used, epoch)

    async def _show(self, question: QuestionItem, reason: str, fallback_used: bool, epoch: int) -> None:
        if not self._is_current(epoch):
            logger.debug("Discarding question for completed session %s", self.session_id)
            return

        self.gate.question_shown(question, self._clock())
        await self._emit_event(_question_event(question, reason, fallback_used))

    def _history(self) -> list[HistoryItem]:
        return [
            HistoryItem(text=item.text, coverage_tag=item.coverage_tag, kind=item.kind, status=item.status)
            for item in self.gate.history
        ]

    def _build_params(self, action: RequestNextQuestion) -> NextQuestionParams:
        history = self.gate.history
        last_question = history[-1].text if history else ""
        return NextQuestionParams(
            draft_text=self.draft_text or action.recent_text,
            recent_text=action.recent_text or self.draft_text,
            last_question=last_question,
            history=self._history(),
            profile=self.profile,
            recent_sessions=self.recent_sessions,
            preferred_kind=action.preferred_kind,
        )

    def _local_fallback(self, kind: QuestionKind) -> QuestionItem:
        recent_tags = [item.coverage_tag for item in self.gate.history[-2:] if item.coverage_tag]
        template = pick_fallback_question(
            self.profile.avoid_topics,
            pool=self.pool,
            rng=self.rng,
            excluding_tags=recent_tags,
        )
        return QuestionItem(text=template.text, kind=kind, coverage_tag=template.coverage_tag)

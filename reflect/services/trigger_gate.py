"""Decide when a journaling session should validate an answer or ask a new question.

The gate is fed a sequential stream of audio-level samples and transcript
updates. Each event is processed to completion and yields at most one action.
While an action is outstanding (``is_generating``) every further trigger is
suppressed rather than queued.

Times are plain float seconds from any monotonic clock.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from reflect.constants import (
    MIN_START_DELAY_SECONDS,
    MINIMUM_INTERVAL_SECONDS,
    RECENT_TEXT_LINES,
    SEEN_SENTENCE_LIMIT,
    SENTENCE_MIN_WORDS,
    SILENCE_THRESHOLD_SECONDS,
)
from reflect.core.logging import get_logger
from reflect.models.contracts import Proactivity, QuestionKind, QuestionStatus, TriggerReason
from reflect.models.questions import QuestionItem
from reflect.services.question_kinds import preferred_next_kind

logger = get_logger(__name__)

SENTENCE_TERMINATORS = (".", "?", "!")


class GatePhase(StrEnum):
    IDLE = "idle"
    AWAITING_DECISION = "awaiting_decision"
    QUESTION_DISPLAYED = "question_displayed"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ValidateAnswer:
    """Ask the question service whether ``recent_text`` answers the displayed question."""

    recent_text: str


@dataclass(frozen=True)
class RequestNextQuestion:
    """Ask the question service for a new question of ``preferred_kind``."""

    preferred_kind: QuestionKind
    reason: TriggerReason
    recent_text: str


GateAction = ValidateAnswer | RequestNextQuestion


@dataclass
class TriggerState:
    """Per-session bookkeeping; discarded when the session ends."""

    session_started_at: float
    last_question_at: float | None = None
    is_generating: bool = False
    is_question_displayed: bool = False
    seen_sentence_boundaries: OrderedDict[str, None] = field(default_factory=OrderedDict)


def ends_at_sentence_boundary(text: str) -> bool:
    return text.strip().endswith(SENTENCE_TERMINATORS)


def build_recent_text(committed_lines: Sequence[str], current_line: str = "") -> str:
    """Join the last few transcript lines, including a non-empty partial line."""
    lines = list(committed_lines)
    if current_line.strip():
        lines.append(current_line)
    return " ".join(lines[-RECENT_TEXT_LINES:]).strip()


class TriggerGate:
    """Heuristic interrupt gate for one journaling session."""

    def __init__(
        self,
        *,
        started_at: float,
        proactivity: Proactivity = Proactivity.MEDIUM,
        voice_activity_threshold: float = 0.02,
        silence_threshold: float = SILENCE_THRESHOLD_SECONDS,
        min_start_delay: float = MIN_START_DELAY_SECONDS,
        minimum_intervals: Mapping[Proactivity, float] = MINIMUM_INTERVAL_SECONDS,
        seen_sentence_limit: int = SEEN_SENTENCE_LIMIT,
    ) -> None:
        self.proactivity = proactivity
        self.voice_activity_threshold = voice_activity_threshold
        self.silence_threshold = silence_threshold
        self.min_start_delay = min_start_delay
        self.minimum_intervals = dict(minimum_intervals)
        self.seen_sentence_limit = seen_sentence_limit
        self.reset(started_at)

    def reset(self, started_at: float) -> None:
        """Start a fresh session; all history and timers are dropped."""
        self.state = TriggerState(session_started_at=started_at)
        self.phase = GatePhase.IDLE
        self._history: list[QuestionItem] = []
        self._current: QuestionItem | None = None
        self._committed_lines: list[str] = []
        self._current_line = ""
        self._silence_started_at: float | None = None
        self._silence_fired = False

    @property
    def history(self) -> tuple[QuestionItem, ...]:
        return tuple(self._history)

    @property
    def current_question(self) -> QuestionItem | None:
        return self._current

    @property
    def is_completed(self) -> bool:
        return self.phase == GatePhase.COMPLETED

    @property
    def minimum_interval(self) -> float:
        return self.minimum_intervals[self.proactivity]

    @property
    def recent_text(self) -> str:
        return build_recent_text(self._committed_lines, self._current_line)

    def set_proactivity(self, proactivity: Proactivity) -> None:
        self.proactivity = proactivity

    # -- event inputs -------------------------------------------------

    def on_audio_level(self, level: float, now: float) -> GateAction | None:
        """Feed one audio-level sample; may fire the silence trigger."""
        if self.is_completed:
            return None

        if level >= self.voice_activity_threshold:
            self._silence_started_at = None
            self._silence_fired = False
            return None

        if self._silence_started_at is None:
            self._silence_started_at = now
        return self._check_silence(now)

    def tick(self, now: float) -> GateAction | None:
        """Re-check the silence trigger without a new sample."""
        if self.is_completed or self._silence_started_at is None:
            return None
        return self._check_silence(now)

    def on_transcript(
        self,
        committed_lines: Sequence[str],
        current_line: str,
        now: float,
    ) -> GateAction | None:
        """Feed the latest transcript; may fire the sentence-boundary trigger."""
        if self.is_completed:
            return None

        self._committed_lines = [line for line in committed_lines if line.strip()]
        self._current_line = current_line

        if self._fresh_boundary_sentence() is None:
            return None
        return self._evaluate(TriggerReason.SENTENCE_BOUNDARY, now)

    # -- results of outstanding actions -------------------------------

    def question_shown(self, question: QuestionItem, now: float) -> bool:
        """Record that ``question`` is on screen. Returns False once completed."""
        if self.is_completed:
            return False

        self._history.append(question)
        self._current = question
        self.state.last_question_at = now
        self.state.is_question_displayed = True
        self.state.is_generating = False
        self.phase = GatePhase.QUESTION_DISPLAYED

        # Text spoken before the question appeared can never count as its answer.
        latest = self._latest_committed_line()
        if latest:
            self._mark_seen(latest)
        return True

    def validation_finished(self, answered: bool, now: float) -> GateAction | None:
        """Apply a validation outcome; an answered question leads straight to the next one."""
        if self.is_completed:
            return None

        self.state.is_generating = False
        if self._current is None or not self.state.is_question_displayed:
            self.phase = GatePhase.IDLE
            return None

        if not answered:
            self.phase = GatePhase.QUESTION_DISPLAYED
            return None

        self._update_current_status(QuestionStatus.ANSWERED)
        self.state.is_question_displayed = False
        return self._start_request(TriggerReason.ANSWERED)

    def generation_failed(self) -> None:
        """Clear the in-flight flag after a call produced nothing usable."""
        if self.is_completed:
            return
        self.state.is_generating = False
        self.phase = (
            GatePhase.QUESTION_DISPLAYED if self.state.is_question_displayed else GatePhase.IDLE
        )

    def refresh(self, now: float) -> GateAction | None:
        """User asked for a different question: ignore the current one and request a new topic."""
        if self.is_completed or self.state.is_generating:
            return None
        if self.state.is_question_displayed:
            self._update_current_status(QuestionStatus.IGNORED)
            self.state.is_question_displayed = False
        return self._start_request(TriggerReason.REFRESH)

    def dismiss(self) -> None:
        """User closed the current question without asking for another."""
        if self.is_completed or not self.state.is_question_displayed:
            return
        self._update_current_status(QuestionStatus.IGNORED)
        self.state.is_question_displayed = False
        if not self.state.is_generating:
            self.phase = GatePhase.IDLE

    def complete(self) -> None:
        """Terminal: every later event and result is ignored."""
        self.phase = GatePhase.COMPLETED
        self.state.is_generating = False

    # -- internals ----------------------------------------------------

    def _check_silence(self, now: float) -> GateAction | None:
        assert self._silence_started_at is not None
        if self._silence_fired or now - self._silence_started_at < self.silence_threshold:
            return None
        action = self._evaluate(TriggerReason.SILENCE, now)
        if action is not None:
            self._silence_fired = True
        return action

    def _evaluate(self, trigger: TriggerReason, now: float) -> GateAction | None:
        state = self.state
        if state.is_generating:
            return None
        if now - state.session_started_at < self.min_start_delay:
            return None

        if state.is_question_displayed:
            sentence = self._fresh_boundary_sentence()
            if sentence is None:
                return None
            self._mark_seen(sentence)
            state.is_generating = True
            self.phase = GatePhase.AWAITING_DECISION
            logger.debug("Validating answer after %s trigger", trigger.value)
            return ValidateAnswer(recent_text=self.recent_text)

        if state.last_question_at is not None and now - state.last_question_at < self.minimum_interval:
            return None

        sentence = self._fresh_boundary_sentence()
        if sentence is not None:
            self._mark_seen(sentence)
        elif trigger == TriggerReason.SENTENCE_BOUNDARY:
            return None

        logger.debug("Requesting next question after %s trigger", trigger.value)
        return self._start_request(trigger)

    def _start_request(self, reason: TriggerReason) -> RequestNextQuestion:
        self.state.is_generating = True
        self.phase = GatePhase.AWAITING_DECISION
        return RequestNextQuestion(
            preferred_kind=preferred_next_kind(reason, self._history),
            reason=reason,
            recent_text=self.recent_text,
        )

    def _latest_committed_line(self) -> str:
        return self._committed_lines[-1].strip() if self._committed_lines else ""

    def _fresh_boundary_sentence(self) -> str | None:
        """The latest committed line if it is a complete, unseen sentence of four or more words."""
        latest = self._latest_committed_line()
        if not ends_at_sentence_boundary(latest):
            return None
        if len(latest.split()) < SENTENCE_MIN_WORDS:
            return None
        if latest in self.state.seen_sentence_boundaries:
            return None
        return latest

    def _mark_seen(self, sentence: str) -> None:
        seen = self.state.seen_sentence_boundaries
        seen[sentence] = None
        seen.move_to_end(sentence)
        while len(seen) > self.seen_sentence_limit:
            seen.popitem(last=False)

    def _update_current_status(self, status: QuestionStatus) -> None:
        if self._current is None:
            return
        updated = self._current.with_status(status)
        for index, item in enumerate(self._history):
            if item.id == updated.id:
                self._history[index] = updated
        self._current = updated

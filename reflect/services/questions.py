"""Question service: validate answers and produce the next journaling nudge.

Both operations make at most one model call, never retry, and always return a
well-formed result. Model output is untrusted: it only reaches callers through
``parse_validation_response`` or ``sanitize_question``, and anything they reject
is replaced by a curated fallback question.
"""

from __future__ import annotations

import math
import random
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reflect.constants import (
    GENERATED_COVERAGE_TAG,
    NOTES_MAX_CHARS,
    QUESTION_CONTEXT_MEMORY_NOTES,
    TOPIC_MAX_ITEMS,
)
from reflect.core.logging import get_logger
from reflect.core.settings import get_settings
from reflect.models.contracts import (
    DEFAULT_PROACTIVITY,
    DEFAULT_TONE,
    Proactivity,
    QuestionKind,
    QuestionReason,
    QuestionStatus,
    Tone,
)
from reflect.models.questions import QuestionTemplate
from reflect.repositories.me_db_repository import load_me_db_state
from reflect.services.llm_agents import run_text_prompt
from reflect.services.llm_prompts import (
    QUESTION_SYSTEM_PROMPT,
    VALIDATION_SYSTEM_PROMPT,
    build_question_prompt,
    build_validation_prompt,
)
from reflect.services.question_kinds import infer_preferred_kind
from reflect.services.question_pool import QuestionPool, pick_fallback_question
from reflect.services.question_text import (
    clean_text,
    coerce_proactivity,
    coerce_tone,
    parse_avoid_topics,
    sanitize_question,
    sanitize_topic_list,
)
from reflect.utils.error_logger import log_error, log_model_error
from reflect.utils.json_utils import extract_json_object

logger = get_logger(__name__)

# Coverage tags of this many recent questions are avoided when picking a fallback.
FALLBACK_RECENT_TAG_WINDOW = 2

# (model_spec, system_prompt, prompt) -> raw model text
ModelRunner = Callable[[str, str, str], str]


@dataclass(frozen=True)
class ValidationOutcome:
    answered: bool
    confidence: float
    reason: str
    fallback_used: bool = False


def failed_validation(reason: QuestionReason) -> ValidationOutcome:
    """Fail closed: a validation we could not run never counts as answered."""
    return ValidationOutcome(answered=False, confidence=0.0, reason=reason.value, fallback_used=True)


@dataclass(frozen=True)
class HistoryItem:
    """A question from the client's session history; kind and status may be missing."""

    text: str
    coverage_tag: str | None = None
    kind: QuestionKind | None = None
    status: QuestionStatus | None = None


@dataclass(frozen=True)
class RecentSession:
    title: str = ""
    snippet: str = ""


@dataclass(frozen=True)
class RequestProfile:
    """Profile hints sent by the client. Already coerced, not yet normalized."""

    tone: Tone | None = None
    proactivity: Proactivity | None = None
    avoid_topics: tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, tone: Any = None, proactivity: Any = None, avoid_topics: Any = None) -> RequestProfile:
        return cls(
            tone=coerce_tone(tone),
            proactivity=coerce_proactivity(proactivity),
            avoid_topics=tuple(sanitize_topic_list(avoid_topics)),
        )


@dataclass(frozen=True)
class NextQuestionParams:
    draft_text: str
    recent_text: str
    last_question: str = ""
    history: Sequence[HistoryItem] = ()
    profile: RequestProfile = field(default_factory=RequestProfile)
    recent_sessions: Sequence[RecentSession] = ()
    preferred_kind: QuestionKind | None = None


@dataclass(frozen=True)
class ProfileContext:
    """Resolved personalization used to build the question prompt."""

    tone: Tone = DEFAULT_TONE
    proactivity: Proactivity = DEFAULT_PROACTIVITY
    avoid_topics: tuple[str, ...] = ()
    memory_notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class NextQuestion:
    text: str
    coverage_tag: str
    kind: QuestionKind


@dataclass(frozen=True)
class QuestionPayload:
    next_question: NextQuestion
    reason: QuestionReason
    fallback_used: bool


def _dedupe(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def read_avoid_topics(value: Any) -> list[str]:
    """Stored avoid topics may be a comma-joined string or a list."""
    if isinstance(value, str):
        return parse_avoid_topics(value)
    return sanitize_topic_list(value)


def read_memory_notes(value: Any) -> list[str]:
    """The most recent memory notes, cleaned and capped for prompt use."""
    if not isinstance(value, list):
        return []
    notes = [note for note in (clean_text(item, NOTES_MAX_CHARS) for item in value) if note]
    return notes[-QUESTION_CONTEXT_MEMORY_NOTES:]


def fallback_profile_context(request_profile: RequestProfile) -> ProfileContext:
    """Context built from the request alone, used when stored state is unavailable."""
    return ProfileContext(
        tone=request_profile.tone or DEFAULT_TONE,
        proactivity=request_profile.proactivity or DEFAULT_PROACTIVITY,
        avoid_topics=tuple(_dedupe(request_profile.avoid_topics)[:TOPIC_MAX_ITEMS]),
    )


def resolve_profile_context(
    profile_json: dict[str, Any],
    state_json: dict[str, Any],
    request_profile: RequestProfile,
) -> ProfileContext:
    """Merge stored ME DB settings with request hints.

    Stored tone and proactivity win over the request; avoid topics are the
    union of both, stored first.
    """
    tone = coerce_tone(profile_json.get("tone")) or request_profile.tone or DEFAULT_TONE
    proactivity = (
        coerce_proactivity(profile_json.get("proactivity"))
        or request_profile.proactivity
        or DEFAULT_PROACTIVITY
    )
    avoid_topics = _dedupe(
        [*read_avoid_topics(profile_json.get("avoidTopics")), *request_profile.avoid_topics]
    )[:TOPIC_MAX_ITEMS]
    return ProfileContext(
        tone=tone,
        proactivity=proactivity,
        avoid_topics=tuple(avoid_topics),
        memory_notes=tuple(read_memory_notes(state_json.get("memory_notes"))),
    )


def load_profile_context(db: Session, user_id: int, request_profile: RequestProfile) -> ProfileContext:
    """Resolve profile context from the ME DB, degrading to the request profile on read errors."""
    try:
        stored = load_me_db_state(db, user_id)
    except SQLAlchemyError as exc:
        log_error(
            "questions",
            exc,
            operation="resolve_profile_context",
            context={"user_id": user_id},
        )
        return fallback_profile_context(request_profile)
    return resolve_profile_context(stored.profile_json, stored.state_json, request_profile)


def clamp_confidence(value: Any) -> float:
    """Numeric confidence clamped to [0, 1]; booleans and non-finite values read as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return min(max(float(value), 0.0), 1.0)


def parse_validation_response(raw: Any) -> ValidationOutcome | None:
    """Parse untrusted validation JSON; ``None`` means the output was unusable.

    ``answered`` must be a real boolean. ``confidence`` is clamped to [0, 1]
    and anything non-numeric becomes 0. A non-string ``reason`` becomes "".
    """
    payload = extract_json_object(raw)
    if payload is None:
        return None

    answered = payload.get("answered")
    if not isinstance(answered, bool):
        return None

    reason = payload.get("reason")
    return ValidationOutcome(
        answered=answered,
        confidence=clamp_confidence(payload.get("confidence")),
        reason=reason if isinstance(reason, str) else "",
        fallback_used=False,
    )


class QuestionService:
    """Runs validate / next-question calls against one model with a curated fallback pool."""

    def __init__(
        self,
        *,
        model_spec: str | None = None,
        pool: QuestionPool | None = None,
        rng: random.Random | None = None,
        runner: ModelRunner = run_text_prompt,
    ) -> None:
        self.model_spec = model_spec or get_settings().question_model
        self.pool = pool or QuestionPool()
        self.rng = rng or random.Random()
        self.runner = runner

    def validate_answer(self, question: str, recent_text: str) -> ValidationOutcome:
        """Ask the model whether ``recent_text`` answers ``question``.

        Returns:
            The parsed outcome, or a closed failure tagged ``openai_error`` /
            ``parse_failed``.
        """
        prompt = build_validation_prompt(question, recent_text)
        try:
            raw = self.runner(self.model_spec, VALIDATION_SYSTEM_PROMPT, prompt)
        except Exception as exc:  # noqa: BLE001
            log_model_error("questions", exc, model_spec=self.model_spec, operation="validate_answer")
            return failed_validation(QuestionReason.OPENAI_ERROR)

        outcome = parse_validation_response(raw)
        if outcome is None:
            logger.warning(
                "Validation output could not be parsed",
                extra={
                    "component": "questions",
                    "operation": "validate_answer",
                    "context_data": {"model_spec": self.model_spec, "output_chars": len(str(raw))},
                },
            )
            return failed_validation(QuestionReason.PARSE_FAILED)
        return outcome

    def request_next_question(
        self,
        params: NextQuestionParams,
        context: ProfileContext | None = None,
    ) -> QuestionPayload:
        """Generate the next question, falling back to the curated pool on any failure.

        Args:
            params: Transcript, history and request profile.
            context: Resolved profile context; defaults to the request profile alone.

        Returns:
            A payload that always carries a displayable question.
        """
        context = context or fallback_profile_context(params.profile)
        preferred_kind = params.preferred_kind or infer_preferred_kind(params.history)

        prompt = build_question_prompt(
            preferred_kind=preferred_kind,
            tone=context.tone,
            proactivity=context.proactivity,
            avoid_topics=context.avoid_topics,
            memory_notes=context.memory_notes,
            last_question=params.last_question,
            recent_text=params.recent_text,
            draft_text=params.draft_text,
            recent_sessions=[(session.title, session.snippet) for session in params.recent_sessions],
        )
        try:
            raw = self.runner(self.model_spec, QUESTION_SYSTEM_PROMPT, prompt)
        except Exception as exc:  # noqa: BLE001
            log_model_error(
                "questions",
                exc,
                model_spec=self.model_spec,
                operation="request_next_question",
                context={"preferred_kind": preferred_kind.value},
            )
            return self._fallback(params, context, preferred_kind, QuestionReason.OPENAI_ERROR)

        text = sanitize_question(raw, context.avoid_topics)
        if text is None:
            logger.info("Generated question rejected by sanitizer; using fallback")
            return self._fallback(params, context, preferred_kind, QuestionReason.FALLBACK_DEFAULT)

        return QuestionPayload(
            next_question=NextQuestion(
                text=text,
                coverage_tag=GENERATED_COVERAGE_TAG,
                kind=preferred_kind,
            ),
            reason=QuestionReason.GENERATED,
            fallback_used=False,
        )

    def pick_fallback(
        self,
        avoid_topics: Iterable[str],
        history: Sequence[HistoryItem] = (),
    ) -> QuestionTemplate:
        recent_tags = [
            item.coverage_tag for item in history[-FALLBACK_RECENT_TAG_WINDOW:] if item.coverage_tag
        ]
        return pick_fallback_question(
            avoid_topics,
            pool=self.pool,
            rng=self.rng,
            excluding_tags=recent_tags,
        )

    def _fallback(
        self,
        params: NextQuestionParams,
        context: ProfileContext,
        preferred_kind: QuestionKind,
        reason: QuestionReason,
    ) -> QuestionPayload:
        template = self.pick_fallback(context.avoid_topics, params.history)
        return QuestionPayload(
            next_question=NextQuestion(
                text=template.text,
                coverage_tag=template.coverage_tag,
                kind=preferred_kind,
            ),
            reason=reason,
            fallback_used=True,
        )


def get_question_service() -> QuestionService:
    """FastAPI dependency returning a service bound to the configured model."""
    return QuestionService(model_spec=get_settings().question_model)

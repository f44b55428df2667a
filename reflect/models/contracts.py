"""Canonical domain contracts and enums shared across backend surfaces."""

from __future__ import annotations

from enum import StrEnum


class QuestionKind(StrEnum):
    """Intended role of a nudge question."""

    DEFAULT = "default"
    FOLLOW_UP = "follow_up"
    NEW_TOPIC = "new_topic"


class QuestionStatus(StrEnum):
    """Lifecycle status of a shown question."""

    SHOWN = "shown"
    ANSWERED = "answered"
    IGNORED = "ignored"


class TriggerReason(StrEnum):
    """Why the next question is being requested."""

    ANSWERED = "answered"
    REFRESH = "refresh"
    SILENCE = "silence"
    SENTENCE_BOUNDARY = "sentence_boundary"


class QuestionMode(StrEnum):
    """Operations exposed by the question endpoint."""

    VALIDATE = "validate"
    NEXT = "next"


class Tone(StrEnum):
    """How the assistant phrases its questions."""

    GENTLE = "gentle"
    BALANCED = "balanced"
    DIRECT = "direct"


class Proactivity(StrEnum):
    """How often the assistant interjects."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QuestionReason(StrEnum):
    """Machine-readable outcome tags returned by the question service."""

    GENERATED = "generated"
    OPENAI_ERROR = "openai_error"
    PARSE_FAILED = "parse_failed"
    FALLBACK_DEFAULT = "fallback_default"


class ProfileMemoryReason(StrEnum):
    """Outcome tags returned by the profile memory merger."""

    UPDATED = "updated"
    NOOP = "noop"
    DUPLICATE_SESSION = "duplicate_session"
    OPENAI_ERROR = "openai_error"
    PARSE_FAILED = "parse_failed"


DEFAULT_TONE = Tone.BALANCED
DEFAULT_PROACTIVITY = Proactivity.MEDIUM

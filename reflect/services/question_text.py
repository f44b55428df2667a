"""Sanitizers for untrusted text: model questions, topics and enum values.

Every function here is total: it accepts any value and returns either a clean
value or ``None``/empty result. Nothing raises on bad input.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import StrEnum
from typing import Any, TypeVar

from reflect.constants import QUESTION_MAX_WORDS, TOPIC_MAX_ITEMS, TOPIC_MAX_WORDS
from reflect.models.contracts import Proactivity, QuestionKind, QuestionStatus, Tone

_WHITESPACE_RE = re.compile(r"\s+")
_LIST_MARKER_RE = re.compile(r"^[\-\*\d\.\s]+")
_QUOTE_PAIRS = {'"': '"', "'": "'", "“": "”", "‘": "’"}

EnumT = TypeVar("EnumT", bound=StrEnum)


def collapse_whitespace(value: str) -> str:
    """Trim and collapse internal runs of whitespace to one space."""
    return _WHITESPACE_RE.sub(" ", value.strip())


def truncate(text: str, max_length: int) -> str:
    return text if len(text) <= max_length else text[:max_length]


def clean_text(value: Any, max_chars: int) -> str | None:
    """Trim, collapse and cap a free-text field; empty strings become ``None``."""
    if not isinstance(value, str):
        return None
    cleaned = collapse_whitespace(value)
    if not cleaned:
        return None
    return cleaned[:max_chars]


def normalize_topic(value: Any) -> str | None:
    """Lowercase + collapse a topic; reject empties and phrases over four words."""
    if not isinstance(value, str):
        return None
    cleaned = collapse_whitespace(value).lower()
    if not cleaned:
        return None
    if len(cleaned.split(" ")) > TOPIC_MAX_WORDS:
        return None
    return cleaned


def sanitize_topic_list(value: Any, limit: int = TOPIC_MAX_ITEMS) -> list[str]:
    """Normalize a list of topics, silently dropping entries that fail.

    Order is preserved, duplicates removed, and the result capped at ``limit``.
    Non-list input yields an empty list.
    """
    if not isinstance(value, (list, tuple)):
        return []
    topics: list[str] = []
    seen: set[str] = set()
    for item in value:
        topic = normalize_topic(item)
        if topic is None or topic in seen:
            continue
        seen.add(topic)
        topics.append(topic)
        if len(topics) >= limit:
            break
    return topics


def parse_avoid_topics(raw: Any) -> list[str]:
    """Parse the comma-joined avoid-topics string stored on a profile."""
    if not isinstance(raw, str):
        return []
    return [topic for topic in (normalize_topic(item) for item in raw.split(",")) if topic]


def coerce_tone(value: Any) -> Tone | None:
    return _coerce_enum(Tone, value)


def coerce_proactivity(value: Any) -> Proactivity | None:
    return _coerce_enum(Proactivity, value)


def coerce_kind(value: Any) -> QuestionKind | None:
    return _coerce_enum(QuestionKind, value)


def coerce_status(value: Any) -> QuestionStatus | None:
    return _coerce_enum(QuestionStatus, value)


def _coerce_enum(enum_cls: type[EnumT], value: Any) -> EnumT | None:
    # Exact match only: "Gentle" or " gentle" are not accepted.
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None


def mentions_topic(text: str, topics: Iterable[str]) -> bool:
    """Case-insensitive substring check of ``text`` against any non-empty topic."""
    lowered = text.lower()
    return any(topic and topic.lower() in lowered for topic in topics)


def _strip_wrapping_quotes(text: str) -> tuple[str, bool]:
    if len(text) >= 2 and _QUOTE_PAIRS.get(text[0]) == text[-1]:
        return text[1:-1].strip(), True
    return text, False


def sanitize_question(text: Any, avoid_topics: Iterable[str] = ()) -> str | None:
    """Clean a model-produced question or reject it.

    Steps: trim, drop one layer of wrapping quotes, keep the first line,
    strip list markers, force a trailing ``?``, reject over 15 words, and
    reject text touching an avoid topic.

    Returns:
        The cleaned question, or ``None`` when it must be replaced by a fallback.
    """
    if not isinstance(text, str):
        return None

    cleaned, unquoted = _strip_wrapping_quotes(text.strip())
    cleaned = cleaned.splitlines()[0].strip() if cleaned else ""
    if not unquoted:
        cleaned, _ = _strip_wrapping_quotes(cleaned)
    cleaned = _LIST_MARKER_RE.sub("", cleaned).strip()
    if not cleaned:
        return None

    if not cleaned.endswith("?"):
        cleaned = cleaned.rstrip(".!").strip()
        if not cleaned:
            return None
        cleaned = f"{cleaned}?"

    if len(cleaned.split()) > QUESTION_MAX_WORDS:
        return None

    if mentions_topic(cleaned, avoid_topics):
        return None

    return cleaned

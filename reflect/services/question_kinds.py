"""Pick the intended kind of the next question from the session history."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from reflect.models.contracts import QuestionKind, QuestionStatus, TriggerReason

FOLLOW_UP_DEPTH_LIMIT = 2


class HistoryEntry(Protocol):
    """Anything carrying a question's kind and status (wire items may omit both)."""

    @property
    def kind(self) -> QuestionKind | None: ...

    @property
    def status(self) -> QuestionStatus | None: ...


def infer_preferred_kind(history: Sequence[HistoryEntry]) -> QuestionKind:
    """Infer the next kind when no explicit trigger reason is available."""
    if not history:
        return QuestionKind.DEFAULT

    last = history[-1]
    if last.status == QuestionStatus.ANSWERED:
        return QuestionKind.FOLLOW_UP
    if last.status == QuestionStatus.IGNORED:
        return QuestionKind.NEW_TOPIC

    if len(history) >= 2:
        previous = history[-2]
        if previous.kind is not None and previous.kind == last.kind:
            return QuestionKind.NEW_TOPIC

    return QuestionKind.DEFAULT


def preferred_next_kind(reason: TriggerReason, history: Sequence[HistoryEntry]) -> QuestionKind:
    """Map a trigger reason plus history to the next question's kind.

    ``history`` must already include the question that was just answered.
    """
    if reason == TriggerReason.REFRESH:
        return QuestionKind.NEW_TOPIC

    if reason == TriggerReason.ANSWERED:
        recent = history[-FOLLOW_UP_DEPTH_LIMIT:]
        if len(recent) == FOLLOW_UP_DEPTH_LIMIT and all(
            item.kind == QuestionKind.FOLLOW_UP for item in recent
        ):
            return QuestionKind.NEW_TOPIC
        return QuestionKind.FOLLOW_UP

    if reason in (TriggerReason.SILENCE, TriggerReason.SENTENCE_BOUNDARY):
        return infer_preferred_kind(history)

    raise ValueError(f"Unhandled trigger reason: {reason!r}")

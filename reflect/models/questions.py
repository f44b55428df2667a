"""In-session question records."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from uuid import uuid4

from reflect.models.contracts import QuestionKind, QuestionStatus


@dataclass(frozen=True)
class QuestionTemplate:
    """A curated question from the fallback pool."""

    text: str
    coverage_tag: str
    kind: QuestionKind = QuestionKind.DEFAULT


@dataclass(frozen=True)
class QuestionItem:
    """A question shown during one journaling session.

    Items are appended to the session history and never removed; a status
    change produces a new item that replaces the old one in place.
    """

    text: str
    kind: QuestionKind
    coverage_tag: str | None = None
    status: QuestionStatus = QuestionStatus.SHOWN
    id: str = field(default_factory=lambda: str(uuid4()))
    asked_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def with_status(self, status: QuestionStatus) -> QuestionItem:
        return replace(self, status=status)

    @classmethod
    def from_template(cls, template: QuestionTemplate) -> QuestionItem:
        return cls(text=template.text, kind=template.kind, coverage_tag=template.coverage_tag)


FIRST_QUESTION = QuestionTemplate(text="How was your day?", coverage_tag="event")

"""Request/response schemas for the journaling API.

Bodies are camelCase on the wire. Required fields are declared optional here
so that a missing field yields a 400 from the endpoint rather than a schema 422.
Loosely typed fields (tone, kind, topics) are coerced by total sanitizers in
the services instead of being rejected.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from reflect.models.contracts import Proactivity, QuestionKind, QuestionMode, Tone


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionHistoryItemPayload(CamelModel):
    """One previously shown question."""

    text: str = Field(..., description="Question text")
    coverage_tag: str | None = Field(None, description="Topic label used for diversity")
    kind: str | None = Field(None, description="default | follow_up | new_topic")
    status: str | None = Field(None, description="shown | answered | ignored")


class QuestionProfilePayload(CamelModel):
    tone: str | None = Field(None, description="gentle | balanced | direct")
    proactivity: str | None = Field(None, description="low | medium | high")
    avoid_topics: list[Any] | None = Field(None, description="Topics the user does not want asked about")


class RecentSessionPayload(CamelModel):
    title: str | None = None
    snippet: str | None = None


class QuestionRequest(CamelModel):
    """Body of ``POST /api/questions``."""

    mode: QuestionMode | None = Field(None, description="validate | next")
    draft_text: str | None = Field(None, description="Full draft transcript so far")
    recent_text: str | None = Field(None, description="Last few transcript lines")
    last_question: str | None = Field(None, description="Question currently displayed")
    question_history: list[QuestionHistoryItemPayload] = Field(default_factory=list)
    profile: QuestionProfilePayload | None = None
    recent_sessions: list[RecentSessionPayload] = Field(default_factory=list)
    preferred_kind: str | None = Field(None, description="Requested kind; inferred from history when absent")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "mode": "next",
                "draftText": "Work was long today. I finally finished the report.",
                "recentText": "I finally finished the report.",
                "lastQuestion": "How was your day?",
                "questionHistory": [{"text": "How was your day?", "kind": "default", "status": "answered"}],
                "profile": {"tone": "gentle", "proactivity": "medium", "avoidTopics": ["health"]},
                "preferredKind": "follow_up",
            }
        },
    )


class NextQuestionPayload(CamelModel):
    text: str
    coverage_tag: str | None = None
    kind: QuestionKind


class QuestionResponse(CamelModel):
    answered: bool = Field(False, description="Whether the recent text answers the last question")
    answer_confidence: float = Field(0.0, ge=0, le=1)
    next_question: NextQuestionPayload | None = None
    reason: str = Field(..., description="generated | openai_error | parse_failed | fallback_default | model reason")
    fallback_used: bool = False


class SummaryModel(CamelModel):
    headline: str = Field(..., description="Short session headline (<= 60 chars)")
    bullets: list[str] = Field(..., description="Two to four concise statements")


class ProfileMemoryRequest(CamelModel):
    """Body of ``POST /api/profile-memory``."""

    session_id: str | None = None
    transcript: str | None = None
    summary: SummaryModel | None = None


class UpdatedProfilePayload(CamelModel):
    display_name: str
    tone: Tone
    proactivity: Proactivity
    avoid_topics: list[str]


class ProfileMemoryResponse(CamelModel):
    applied: bool
    reason: str
    updated_profile: UpdatedProfilePayload
    session_id: str


class SummaryRequest(CamelModel):
    """Body of ``POST /api/summaries``."""

    session_id: str | None = None
    transcript: str | None = None
    title: str | None = None


class SummaryResponse(CamelModel):
    summary: SummaryModel

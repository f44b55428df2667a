"""Async client for the question endpoint, used by remote journaling sessions."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from reflect.core.logging import get_logger
from reflect.core.settings import get_settings
from reflect.models.contracts import QuestionKind, QuestionMode, QuestionReason
from reflect.services.question_text import coerce_kind
from reflect.services.questions import (
    NextQuestion,
    NextQuestionParams,
    QuestionPayload,
    ValidationOutcome,
    clamp_confidence,
)
from reflect.utils.error_logger import log_error

logger = get_logger(__name__)


class QuestionClientError(Exception):
    """The question endpoint could not be reached or returned an unusable body."""


def _history_payload(params: NextQuestionParams) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for item in params.history:
        entry: dict[str, Any] = {"text": item.text}
        if item.coverage_tag:
            entry["coverageTag"] = item.coverage_tag
        if item.kind is not None:
            entry["kind"] = item.kind.value
        if item.status is not None:
            entry["status"] = item.status.value
        items.append(entry)
    return items


def build_next_request(params: NextQuestionParams) -> dict[str, Any]:
    """Serialize next-question params into the camelCase wire body."""
    profile: dict[str, Any] = {"avoidTopics": list(params.profile.avoid_topics)}
    if params.profile.tone is not None:
        profile["tone"] = params.profile.tone.value
    if params.profile.proactivity is not None:
        profile["proactivity"] = params.profile.proactivity.value

    body: dict[str, Any] = {
        "mode": QuestionMode.NEXT.value,
        "draftText": params.draft_text,
        "recentText": params.recent_text,
        "questionHistory": _history_payload(params),
        "profile": profile,
        "recentSessions": [
            {"title": session.title, "snippet": session.snippet} for session in params.recent_sessions
        ],
    }
    if params.last_question:
        body["lastQuestion"] = params.last_question
    if params.preferred_kind is not None:
        body["preferredKind"] = params.preferred_kind.value
    return body


def build_validate_request(question: str, recent_text: str, draft_text: str) -> dict[str, Any]:
    return {
        "mode": QuestionMode.VALIDATE.value,
        "draftText": draft_text,
        "recentText": recent_text,
        "lastQuestion": question,
    }


def parse_next_response(body: dict[str, Any], params: NextQuestionParams) -> QuestionPayload:
    """Read a next-question response; a missing question is an error for the caller to handle."""
    question = body.get("nextQuestion")
    if not isinstance(question, dict) or not isinstance(question.get("text"), str):
        raise QuestionClientError("Response did not include a next question")

    kind = coerce_kind(question.get("kind")) or params.preferred_kind or QuestionKind.DEFAULT
    coverage_tag = question.get("coverageTag")
    try:
        reason = QuestionReason(body.get("reason"))
    except ValueError:
        reason = QuestionReason.GENERATED
    return QuestionPayload(
        next_question=NextQuestion(
            text=question["text"],
            coverage_tag=coverage_tag if isinstance(coverage_tag, str) else "",
            kind=kind,
        ),
        reason=reason,
        fallback_used=body.get("fallbackUsed") is True,
    )


def parse_validate_response(body: dict[str, Any]) -> ValidationOutcome:
    reason = body.get("reason")
    return ValidationOutcome(
        answered=body.get("answered") is True,
        confidence=clamp_confidence(body.get("answerConfidence")),
        reason=reason if isinstance(reason, str) else "",
        fallback_used=body.get("fallbackUsed") is True,
    )


class HttpQuestionClient:
    """Question backend that calls ``POST /api/questions`` over HTTP. No retries."""

    def __init__(
        self,
        *,
        token: str,
        url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.url = url or settings.question_service_url
        self.timeout = httpx.Timeout(timeout=timeout_seconds or settings.http_timeout_seconds, connect=5.0)
        self.headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        self._transport = transport

    @asynccontextmanager
    async def get_client(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            transport=self._transport,
        ) as client:
            yield client

    async def _post(self, body: dict[str, Any], operation: str) -> dict[str, Any]:
        async with self.get_client() as client:
            try:
                response = await client.post(self.url, json=body)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                log_error(
                    "question_client",
                    exc,
                    operation=operation,
                    http_response=exc.response,
                )
                raise QuestionClientError(f"Question endpoint returned {exc.response.status_code}") from exc
            except httpx.HTTPError as exc:
                log_error("question_client", exc, operation=operation, context={"url": self.url})
                raise QuestionClientError(f"Question endpoint unreachable: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise QuestionClientError("Question endpoint returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise QuestionClientError("Question endpoint returned a non-object body")
        logger.debug("Question endpoint %s succeeded", operation)
        return payload

    async def validate_answer(self, question: str, recent_text: str, draft_text: str) -> ValidationOutcome:
        body = await self._post(build_validate_request(question, recent_text, draft_text), "validate")
        return parse_validate_response(body)

    async def next_question(self, params: NextQuestionParams) -> QuestionPayload:
        body = await self._post(build_next_request(params), "next")
        return parse_next_response(body, params)

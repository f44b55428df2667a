"""Question endpoint: validate an answer or produce the next nudge."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from reflect.core.db import get_db_session
from reflect.core.deps import get_current_user
from reflect.models.contracts import QuestionMode
from reflect.models.user import User
from reflect.routers.api.models import NextQuestionPayload, QuestionRequest, QuestionResponse
from reflect.services.question_text import coerce_kind, coerce_status
from reflect.services.questions import (
    HistoryItem,
    NextQuestionParams,
    QuestionService,
    RecentSession,
    RequestProfile,
    get_question_service,
    load_profile_context,
)

router = APIRouter(prefix="/questions", tags=["questions"])


def _next_question_params(payload: QuestionRequest) -> NextQuestionParams:
    profile = payload.profile
    return NextQuestionParams(
        draft_text=payload.draft_text or "",
        recent_text=payload.recent_text or "",
        last_question=payload.last_question or "",
        history=[
            HistoryItem(
                text=item.text,
                coverage_tag=item.coverage_tag,
                kind=coerce_kind(item.kind),
                status=coerce_status(item.status),
            )
            for item in payload.question_history
        ],
        profile=RequestProfile.from_raw(
            tone=profile.tone if profile else None,
            proactivity=profile.proactivity if profile else None,
            avoid_topics=profile.avoid_topics if profile else None,
        ),
        recent_sessions=[
            RecentSession(title=session.title or "", snippet=session.snippet or "")
            for session in payload.recent_sessions
        ],
        preferred_kind=coerce_kind(payload.preferred_kind),
    )


@router.post(
    "",
    response_model=QuestionResponse,
    summary="Validate an answer or get the next question",
)
async def ask_question(
    payload: QuestionRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db_session)],
    service: Annotated[QuestionService, Depends(get_question_service)],
) -> QuestionResponse:
    """Run one question-service operation.

    Model failures never surface as errors: the response carries a fallback
    and a machine-readable ``reason`` instead.
    """
    if payload.mode is None or not payload.draft_text or not payload.recent_text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="mode, draftText, and recentText are required.",
        )

    if payload.mode == QuestionMode.VALIDATE:
        if not payload.last_question:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="lastQuestion is required for validation.",
            )
        outcome = await run_in_threadpool(service.validate_answer, payload.last_question, payload.recent_text)
        return QuestionResponse(
            answered=outcome.answered,
            answer_confidence=outcome.confidence,
            next_question=None,
            reason=outcome.reason,
            fallback_used=outcome.fallback_used,
        )

    params = _next_question_params(payload)
    context = await run_in_threadpool(load_profile_context, db, current_user.id, params.profile)
    result = await run_in_threadpool(service.request_next_question, params, context)
    return QuestionResponse(
        answered=False,
        answer_confidence=0.0,
        next_question=NextQuestionPayload(
            text=result.next_question.text,
            coverage_tag=result.next_question.coverage_tag,
            kind=result.next_question.kind,
        ),
        reason=result.reason.value,
        fallback_used=result.fallback_used,
    )

"""Summary endpoint: headline and bullets for a finished session."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from reflect.core.db import get_db_session
from reflect.core.deps import get_current_user
from reflect.models.user import User
from reflect.routers.api.models import SummaryModel, SummaryRequest, SummaryResponse
from reflect.services.summaries import SummaryService, get_summary_service

router = APIRouter(prefix="/summaries", tags=["summaries"])


@router.post(
    "",
    response_model=SummaryResponse,
    summary="Summarize a completed session",
)
async def create_summary(
    payload: SummaryRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db_session)],
    service: Annotated[SummaryService, Depends(get_summary_service)],
) -> SummaryResponse:
    """Return the cached summary for the session, generating it on first request."""
    session_id = (payload.session_id or "").strip()
    transcript = (payload.transcript or "").strip()
    if not session_id or not transcript:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="sessionId and transcript are required.",
        )

    summary = await run_in_threadpool(
        service.generate_summary,
        db,
        current_user.id,
        session_id=session_id,
        transcript=transcript,
        title=(payload.title or "").strip() or None,
    )
    return SummaryResponse(summary=SummaryModel(headline=summary.headline, bullets=list(summary.bullets)))

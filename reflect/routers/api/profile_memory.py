"""Profile memory endpoint: fold a finished session into the user's profile."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from reflect.core.db import get_db_session
from reflect.core.deps import get_current_user
from reflect.models.summaries import SummaryPayload
from reflect.models.user import User
from reflect.routers.api.models import (
    ProfileMemoryRequest,
    ProfileMemoryResponse,
    UpdatedProfilePayload,
)
from reflect.services.profile_memory import ProfileMemoryService, get_profile_memory_service

router = APIRouter(prefix="/profile-memory", tags=["profile"])


@router.post(
    "",
    response_model=ProfileMemoryResponse,
    summary="Update profile memory from a completed session",
)
async def update_profile_memory(
    payload: ProfileMemoryRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db_session)],
    service: Annotated[ProfileMemoryService, Depends(get_profile_memory_service)],
) -> ProfileMemoryResponse:
    """Apply a conservative, idempotent profile patch for one session."""
    session_id = (payload.session_id or "").strip()
    transcript = (payload.transcript or "").strip()
    if not session_id or not transcript or payload.summary is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="sessionId, transcript, and summary are required.",
        )

    summary = SummaryPayload(headline=payload.summary.headline, bullets=tuple(payload.summary.bullets))
    result = await run_in_threadpool(
        service.update_from_session,
        db,
        current_user.id,
        session_id=session_id,
        transcript=transcript,
        summary=summary,
    )
    profile = result.updated_profile
    return ProfileMemoryResponse(
        applied=result.applied,
        reason=result.reason.value,
        updated_profile=UpdatedProfilePayload(
            display_name=profile.display_name,
            tone=profile.tone,
            proactivity=profile.proactivity,
            avoid_topics=list(profile.avoid_topics),
        ),
        session_id=result.session_id,
    )

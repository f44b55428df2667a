"""Read/write access to the ME DB row and cached session summaries."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from sqlalchemy.orm import Session

from reflect.models.profile import MeDbState
from reflect.models.schema import DailySummary, MeDb


def _as_dict(value: Any) -> dict[str, Any]:
    return deepcopy(value) if isinstance(value, dict) else {}


def load_me_db_state(db: Session, user_id: int) -> MeDbState:
    """Load a user's ME DB row; a missing row reads as empty JSON objects.

    Args:
        db: Active SQLAlchemy session.
        user_id: Owner of the row.

    Returns:
        A detached copy that callers may mutate freely.
    """
    row = db.get(MeDb, user_id)
    if row is None:
        return MeDbState()
    return MeDbState(
        profile_json=_as_dict(row.profile_json),
        state_json=_as_dict(row.state_json),
        patterns_json=_as_dict(row.patterns_json),
        trust_json=_as_dict(row.trust_json),
    )


def save_me_db_state(
    db: Session,
    user_id: int,
    *,
    profile_json: dict[str, Any],
    state_json: dict[str, Any],
) -> None:
    """Upsert profile and state; patterns and trust are left untouched."""
    row = db.get(MeDb, user_id)
    if row is None:
        row = MeDb(user_id=user_id, patterns_json={}, trust_json={})
        db.add(row)
    row.profile_json = deepcopy(profile_json)
    row.state_json = deepcopy(state_json)
    db.commit()


def get_cached_summary(db: Session, user_id: int, session_id: str) -> dict[str, Any] | None:
    row = db.get(DailySummary, session_id)
    if row is None or row.user_id != user_id:
        return None
    return _as_dict(row.summary_json)


def save_summary(db: Session, user_id: int, session_id: str, summary: dict[str, Any]) -> None:
    """Store a session summary; rows owned by another user are never overwritten."""
    row = db.get(DailySummary, session_id)
    if row is not None and row.user_id != user_id:
        return
    if row is None:
        row = DailySummary(session_id=session_id, user_id=user_id)
        db.add(row)
    row.summary_json = deepcopy(summary)
    db.commit()

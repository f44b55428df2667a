"""Persistent personalization tables."""

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from reflect.core.db import Base
from reflect.models.user import User  # noqa: F401


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MeDb(Base):
    """Per-user personalization record (the "ME DB").

    ``profile_json`` holds user-facing settings, ``state_json`` holds memory
    notes and the profile-memory idempotency marker. ``patterns_json`` and
    ``trust_json`` are owned by other features and carried through untouched.
    """

    __tablename__ = "me_db"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    profile_json = Column(JSON, default=dict, nullable=False)
    state_json = Column(JSON, default=dict, nullable=False)
    patterns_json = Column(JSON, default=dict, nullable=False)
    trust_json = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<MeDb(user_id={self.user_id})>"


class DailySummary(Base):
    """Cached end-of-session summary, one per journaling session."""

    __tablename__ = "daily_summaries"

    session_id = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    summary_json = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<DailySummary(session_id={self.session_id}, user_id={self.user_id})>"

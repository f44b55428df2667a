"""Profile and ME DB value types used by the profile-memory merger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from reflect.models.contracts import (
    DEFAULT_PROACTIVITY,
    DEFAULT_TONE,
    Proactivity,
    ProfileMemoryReason,
    Tone,
)


@dataclass(frozen=True)
class ProfileSettings:
    """User-facing profile settings exposed to clients.

    ``avoid_topics`` entries are normalized: lowercase, collapsed whitespace,
    at most four words, at most 24 entries.
    """

    display_name: str = ""
    tone: Tone = DEFAULT_TONE
    proactivity: Proactivity = DEFAULT_PROACTIVITY
    avoid_topics: tuple[str, ...] = ()


@dataclass(frozen=True)
class SanitizedModelPatch:
    """A profile patch derived from untrusted model output.

    Every field has already passed a total sanitizer; ``None`` means "leave as is".
    """

    should_update: bool = False
    display_name: str | None = None
    tone: Tone | None = None
    proactivity: Proactivity | None = None
    avoid_topics_add: tuple[str, ...] = ()
    avoid_topics_remove: tuple[str, ...] = ()
    notes_append: str | None = None


@dataclass
class MeDbState:
    """Snapshot of one user's ME DB row."""

    profile_json: dict[str, Any] = field(default_factory=dict)
    state_json: dict[str, Any] = field(default_factory=dict)
    patterns_json: dict[str, Any] = field(default_factory=dict)
    trust_json: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProfileMergeResult:
    profile_json: dict[str, Any]
    changed: bool


@dataclass(frozen=True)
class StateUpdateResult:
    state_json: dict[str, Any]
    changed: bool
    notes_changed: bool
    duplicate: bool


@dataclass(frozen=True)
class ProfileMemoryResult:
    """Outcome of one profile-memory update for a finished session."""

    applied: bool
    reason: ProfileMemoryReason
    updated_profile: ProfileSettings
    session_id: str

"""Profile memory: fold one finished session into the user's long-lived profile.

The merge runs once per session and is guarded by an idempotency marker
(``state_json.last_profile_memory_session_id``). There is no locking: two truly
concurrent calls for the same session may both pass the marker check, in
which case the last write wins.

The model patch is untrusted JSON. It only reaches the merge through
``sanitize_model_response``, which returns a ``SanitizedModelPatch``.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from reflect.constants import (
    DISPLAY_NAME_MAX_CHARS,
    MEMORY_NOTES_MAX_ITEMS,
    NOTES_MAX_CHARS,
    PROFILE_SCHEMA_VERSION,
    TOPIC_MAX_ITEMS,
)
from reflect.core.logging import get_logger
from reflect.core.settings import get_settings
from reflect.core.timing import timed
from reflect.models.contracts import DEFAULT_PROACTIVITY, DEFAULT_TONE, ProfileMemoryReason
from reflect.models.profile import (
    ProfileMemoryResult,
    ProfileMergeResult,
    ProfileSettings,
    SanitizedModelPatch,
    StateUpdateResult,
)
from reflect.models.summaries import SummaryPayload
from reflect.repositories.me_db_repository import load_me_db_state, save_me_db_state
from reflect.services.llm_agents import run_text_prompt
from reflect.services.llm_prompts import PROFILE_MEMORY_SYSTEM_PROMPT, build_profile_memory_prompt
from reflect.services.question_text import (
    clean_text,
    coerce_proactivity,
    coerce_tone,
    parse_avoid_topics,
    sanitize_topic_list,
)
from reflect.utils.error_logger import log_model_error
from reflect.utils.json_utils import extract_json_object

logger = get_logger(__name__)

SESSION_MARKER_KEY = "last_profile_memory_session_id"
MEMORY_NOTES_KEY = "memory_notes"

PROFILE_DEFAULTS: dict[str, Any] = {
    "schemaVersion": PROFILE_SCHEMA_VERSION,
    "name": "",
    "displayName": "",
    "pronouns": "",
    "timezone": "UTC",
    "tone": DEFAULT_TONE.value,
    "proactivity": DEFAULT_PROACTIVITY.value,
    "avoidTopics": "",
    "notes": "",
    "lastUpdatedBy": "user",
    "lastUpdatedAt": "",
}

# (model_spec, system_prompt, prompt) -> raw model text
ModelRunner = Callable[[str, str, str], str]


def _as_object(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _read_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def with_profile_defaults(profile_json: Any) -> dict[str, Any]:
    """Fill every missing canonical field; stored values always win."""
    return {**PROFILE_DEFAULTS, **_as_object(profile_json)}


def sanitize_model_response(raw: Any) -> SanitizedModelPatch:
    """Turn untrusted model JSON into a patch. Total: garbage becomes an empty no-op patch."""
    payload = _as_object(raw)
    patch = _as_object(payload.get("profilePatch"))
    return SanitizedModelPatch(
        should_update=payload.get("shouldUpdate") is True,
        display_name=clean_text(patch.get("displayName"), DISPLAY_NAME_MAX_CHARS),
        tone=coerce_tone(patch.get("tone")),
        proactivity=coerce_proactivity(patch.get("proactivity")),
        avoid_topics_add=tuple(sanitize_topic_list(patch.get("avoidTopicsAdd"))),
        avoid_topics_remove=tuple(sanitize_topic_list(patch.get("avoidTopicsRemove"))),
        notes_append=clean_text(patch.get("notesAppend"), NOTES_MAX_CHARS),
    )


def is_duplicate_session(state_json: Any, session_id: str) -> bool:
    marker = _as_object(state_json).get(SESSION_MARKER_KEY)
    return isinstance(marker, str) and marker == session_id


def merge_profile_json(
    profile_json: Any,
    patch: SanitizedModelPatch,
    should_update: bool,
) -> ProfileMergeResult:
    """Apply a sanitized patch on top of the defaulted profile.

    Avoid topics are merged remove-first, then add, so a topic named in both
    lists ends up present. The merged set keeps insertion order and is capped
    at 24 entries.
    """
    current = with_profile_defaults(profile_json)
    merged = dict(current)
    if not should_update:
        return ProfileMergeResult(profile_json=merged, changed=False)

    changed = False
    if patch.display_name is not None and patch.display_name != _read_string(current["displayName"]):
        merged["displayName"] = patch.display_name
        changed = True

    if patch.tone is not None and patch.tone != (coerce_tone(current["tone"]) or DEFAULT_TONE):
        merged["tone"] = patch.tone.value
        changed = True

    current_proactivity = coerce_proactivity(current["proactivity"]) or DEFAULT_PROACTIVITY
    if patch.proactivity is not None and patch.proactivity != current_proactivity:
        merged["proactivity"] = patch.proactivity.value
        changed = True

    current_topics = _read_string(current["avoidTopics"])
    topics = dict.fromkeys(parse_avoid_topics(current_topics))
    for topic in patch.avoid_topics_remove:
        topics.pop(topic, None)
    for topic in patch.avoid_topics_add:
        topics[topic] = None
    merged_topics = ",".join(list(topics)[:TOPIC_MAX_ITEMS])
    if merged_topics != current_topics:
        merged["avoidTopics"] = merged_topics
        changed = True

    return ProfileMergeResult(profile_json=merged, changed=changed)


def apply_state_update(
    state_json: Any,
    session_id: str,
    notes_append: str | None,
    should_update: bool,
) -> StateUpdateResult:
    """Append a memory note and advance the session marker.

    A duplicate session leaves state untouched. Otherwise the marker is always
    stamped, even when nothing else changes.
    """
    current = _as_object(state_json)
    if is_duplicate_session(current, session_id):
        return StateUpdateResult(state_json=current, changed=False, notes_changed=False, duplicate=True)

    merged = dict(current)
    notes_changed = False
    if should_update and notes_append is not None:
        existing = current.get(MEMORY_NOTES_KEY)
        notes = [
            item.strip()
            for item in (existing if isinstance(existing, list) else [])
            if isinstance(item, str) and item.strip()
        ]
        notes.append(notes_append)
        merged[MEMORY_NOTES_KEY] = notes[-MEMORY_NOTES_MAX_ITEMS:]
        notes_changed = True

    merged[SESSION_MARKER_KEY] = session_id
    return StateUpdateResult(state_json=merged, changed=True, notes_changed=notes_changed, duplicate=False)


def updated_profile_for_response(profile_json: Any) -> ProfileSettings:
    profile = _as_object(profile_json)
    return ProfileSettings(
        display_name=_read_string(profile.get("displayName")),
        tone=coerce_tone(profile.get("tone")) or DEFAULT_TONE,
        proactivity=coerce_proactivity(profile.get("proactivity")) or DEFAULT_PROACTIVITY,
        avoid_topics=tuple(parse_avoid_topics(profile.get("avoidTopics"))),
    )


def stamp_ai_update(profile_json: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
    stamped = dict(profile_json)
    stamped["schemaVersion"] = PROFILE_SCHEMA_VERSION
    stamped["lastUpdatedBy"] = "ai"
    stamped["lastUpdatedAt"] = (now or datetime.now(UTC)).isoformat()
    return stamped


class ProfileMemoryService:
    """Runs the end-of-session profile memory update for one user."""

    def __init__(self, *, model_spec: str | None = None, runner: ModelRunner = run_text_prompt) -> None:
        self.model_spec = model_spec or get_settings().profile_memory_model
        self.runner = runner

    def update_from_session(
        self,
        db: Session,
        user_id: int,
        *,
        session_id: str,
        transcript: str,
        summary: SummaryPayload,
    ) -> ProfileMemoryResult:
        """Infer and merge a conservative profile patch for a finished session.

        Args:
            db: Active SQLAlchemy session.
            user_id: Owner of the ME DB row.
            session_id: Journaling session being folded in.
            transcript: Full session transcript.
            summary: Session summary.

        Returns:
            The merge outcome. Model failures return ``applied=False`` and write
            nothing, so the same session can be retried later.
        """
        existing = load_me_db_state(db, user_id)
        profile_json = with_profile_defaults(existing.profile_json)

        if is_duplicate_session(existing.state_json, session_id):
            logger.info("Profile memory already applied for session %s", session_id)
            return ProfileMemoryResult(
                applied=True,
                reason=ProfileMemoryReason.DUPLICATE_SESSION,
                updated_profile=updated_profile_for_response(profile_json),
                session_id=session_id,
            )

        prompt = build_profile_memory_prompt(
            profile_json=profile_json,
            state_json=existing.state_json,
            session_id=session_id,
            headline=summary.headline,
            bullets=summary.bullets,
            transcript=transcript,
        )
        try:
            with timed("profile_memory.model_call"):
                raw = self.runner(self.model_spec, PROFILE_MEMORY_SYSTEM_PROMPT, prompt)
        except Exception as exc:  # noqa: BLE001
            log_model_error(
                "profile_memory",
                exc,
                model_spec=self.model_spec,
                operation="generate_patch",
                session_id=session_id,
            )
            return self._not_applied(profile_json, session_id, ProfileMemoryReason.OPENAI_ERROR)

        payload = extract_json_object(raw)
        if payload is None:
            logger.warning(
                "Profile memory patch could not be parsed",
                extra={
                    "component": "profile_memory",
                    "operation": "generate_patch",
                    "session_id": session_id,
                },
            )
            return self._not_applied(profile_json, session_id, ProfileMemoryReason.PARSE_FAILED)

        patch = sanitize_model_response(payload)
        profile_merge = merge_profile_json(profile_json, patch, patch.should_update)
        state_merge = apply_state_update(
            existing.state_json, session_id, patch.notes_append, patch.should_update
        )

        merged_profile = profile_merge.profile_json
        if profile_merge.changed or state_merge.notes_changed:
            reason = ProfileMemoryReason.UPDATED
            merged_profile = stamp_ai_update(merged_profile)
        else:
            reason = ProfileMemoryReason.NOOP

        save_me_db_state(db, user_id, profile_json=merged_profile, state_json=state_merge.state_json)
        logger.info(
            "Profile memory %s for session %s",
            reason.value,
            session_id,
            extra={
                "component": "profile_memory",
                "operation": "update_from_session",
                "session_id": session_id,
                "context_data": {
                    "profile_changed": profile_merge.changed,
                    "notes_changed": state_merge.notes_changed,
                },
            },
        )
        return ProfileMemoryResult(
            applied=True,
            reason=reason,
            updated_profile=updated_profile_for_response(merged_profile),
            session_id=session_id,
        )

    @staticmethod
    def _not_applied(
        profile_json: dict[str, Any], session_id: str, reason: ProfileMemoryReason
    ) -> ProfileMemoryResult:
        return ProfileMemoryResult(
            applied=False,
            reason=reason,
            updated_profile=updated_profile_for_response(profile_json),
            session_id=session_id,
        )


def get_profile_memory_service() -> ProfileMemoryService:
    """FastAPI dependency returning a service bound to the configured model."""
    return ProfileMemoryService(model_spec=get_settings().profile_memory_model)

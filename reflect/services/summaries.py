"""End-of-session summaries: a short headline plus a few bullets.

The summary feeds the profile-memory merge and the session list. A summary is
always produced: model output is normalized, and a model failure falls back
to one derived from the transcript alone.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from sqlalchemy.orm import Session

from reflect.constants import (
    SUMMARY_DEFAULT_HEADLINE,
    SUMMARY_HEADLINE_MAX_CHARS,
    SUMMARY_MAX_BULLETS,
    SUMMARY_MIN_BULLETS,
)
from reflect.core.logging import get_logger
from reflect.core.settings import get_settings
from reflect.models.summaries import SummaryPayload
from reflect.repositories.me_db_repository import get_cached_summary, save_summary
from reflect.services.llm_agents import run_text_prompt
from reflect.services.llm_prompts import SUMMARY_SYSTEM_PROMPT, build_summary_prompt
from reflect.utils.error_logger import log_model_error
from reflect.utils.json_utils import extract_json_object

logger = get_logger(__name__)

FILLER_BULLETS = ("Reflection captured.", "Key thoughts recorded.")
# Single-line transcripts are split in half, but never into a first half shorter than this.
MIN_SPLIT_WORDS = 8

ModelRunner = Callable[[str, str, str], str]


def _transcript_lines(transcript: str) -> list[str]:
    return [line.strip() for line in re.split(r"\n+", transcript) if line.strip()]


def _headline_fallback(transcript: str, title: str | None) -> str:
    if title and title.strip():
        return title.strip()
    lines = _transcript_lines(transcript)
    return lines[0] if lines else SUMMARY_DEFAULT_HEADLINE


def _cap_headline(headline: str) -> str:
    return headline[:SUMMARY_HEADLINE_MAX_CHARS].strip()


def _top_up(bullets: list[str], candidates: list[str]) -> list[str]:
    for candidate in candidates:
        if len(bullets) >= SUMMARY_MIN_BULLETS:
            break
        if candidate not in bullets:
            bullets.append(candidate)
    return bullets


def fallback_summary_from_transcript(transcript: str, title: str | None = None) -> SummaryPayload:
    """Build a summary without a model: first lines become bullets."""
    headline = _cap_headline(_headline_fallback(transcript, title)) or SUMMARY_DEFAULT_HEADLINE
    lines = _transcript_lines(transcript)
    if len(lines) >= SUMMARY_MIN_BULLETS:
        return SummaryPayload(headline=headline, bullets=tuple(lines[:SUMMARY_MAX_BULLETS]))

    words = transcript.split()
    midpoint = max(MIN_SPLIT_WORDS, len(words) // 2)
    first = " ".join(words[:midpoint])
    second = " ".join(words[midpoint:])
    return SummaryPayload(
        headline=headline,
        bullets=(first or FILLER_BULLETS[0], second or FILLER_BULLETS[1]),
    )


def normalize_summary(raw: Any, transcript: str, title: str | None = None) -> SummaryPayload:
    """Coerce untrusted summary JSON into a valid payload.

    The headline falls back to the title, then the first transcript line. Bullets
    are trimmed, capped at four and topped up to two from transcript lines.
    """
    payload = raw if isinstance(raw, dict) else {}
    headline_raw = payload.get("headline")
    headline = headline_raw.strip() if isinstance(headline_raw, str) else ""
    headline = _cap_headline(headline or _headline_fallback(transcript, title)) or SUMMARY_DEFAULT_HEADLINE

    bullets_raw = payload.get("bullets")
    bullets = [
        str(bullet).strip()
        for bullet in (bullets_raw if isinstance(bullets_raw, list) else [])
        if bullet is not None and str(bullet).strip()
    ][:SUMMARY_MAX_BULLETS]

    bullets = _top_up(bullets, _transcript_lines(transcript))
    bullets = _top_up(bullets, list(FILLER_BULLETS))
    return SummaryPayload(headline=headline, bullets=tuple(bullets))


def summary_from_json(value: Any) -> SummaryPayload | None:
    """Read a cached summary row; ``None`` if it does not have the expected shape."""
    if not isinstance(value, dict):
        return None
    headline = value.get("headline")
    bullets = value.get("bullets")
    if not isinstance(headline, str) or not isinstance(bullets, list):
        return None
    return SummaryPayload(headline=headline, bullets=tuple(str(bullet) for bullet in bullets))


class SummaryService:
    """Generate and cache one summary per journaling session."""

    def __init__(self, *, model_spec: str | None = None, runner: ModelRunner = run_text_prompt) -> None:
        self.model_spec = model_spec or get_settings().summary_model
        self.runner = runner

    def summarize(self, transcript: str, title: str | None = None, session_id: str | None = None) -> SummaryPayload:
        """Summarize a transcript with the model, falling back to the transcript itself."""
        try:
            raw = self.runner(self.model_spec, SUMMARY_SYSTEM_PROMPT, build_summary_prompt(transcript, title))
        except Exception as exc:  # noqa: BLE001
            log_model_error(
                "summaries",
                exc,
                model_spec=self.model_spec,
                operation="generate_summary",
                session_id=session_id,
            )
            return fallback_summary_from_transcript(transcript, title)

        payload = extract_json_object(raw)
        if payload is None:
            logger.warning("Summary output was not JSON; deriving summary from transcript")
            return fallback_summary_from_transcript(transcript, title)
        return normalize_summary(payload, transcript, title)

    def generate_summary(
        self,
        db: Session,
        user_id: int,
        *,
        session_id: str,
        transcript: str,
        title: str | None = None,
    ) -> SummaryPayload:
        """Return the cached summary for ``session_id`` or create and store one."""
        cached = summary_from_json(get_cached_summary(db, user_id, session_id))
        if cached is not None:
            logger.debug("Using cached summary for session %s", session_id)
            return cached

        summary = self.summarize(transcript, title, session_id=session_id)
        save_summary(db, user_id, session_id, summary.to_json())
        return summary


def get_summary_service() -> SummaryService:
    """FastAPI dependency returning a service bound to the configured model."""
    return SummaryService(model_spec=get_settings().summary_model)

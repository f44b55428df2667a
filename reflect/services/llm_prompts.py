"""
Prompt builders for the journaling services.
Every prompt asks for plain text or strict JSON; callers parse the raw output themselves.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from reflect.constants import (
    NOTES_MAX_CHARS,
    QUESTION_CONTEXT_DRAFT_CHARS,
    QUESTION_CONTEXT_MEMORY_NOTES,
    QUESTION_CONTEXT_RECENT_CHARS,
    QUESTION_MAX_WORDS,
    SUMMARY_HEADLINE_MAX_CHARS,
    SUMMARY_MAX_BULLETS,
    SUMMARY_MIN_BULLETS,
)
from reflect.models.contracts import Proactivity, QuestionKind, Tone
from reflect.services.question_text import truncate

# ruff: noqa: E501
VALIDATION_SYSTEM_PROMPT = "You are validating whether a user answered a question in a journal transcript."

QUESTION_SYSTEM_PROMPT = "You help users reflect deeper with short, thoughtful questions."

PROFILE_MEMORY_SYSTEM_PROMPT = "\n".join(
    [
        "You maintain a user's journaling profile from one completed journal session.",
        "Be conservative and evidence-based.",
        "",
        "Rules:",
        "- Output ONLY valid JSON matching the requested shape.",
        "- Never invent facts.",
        "- Update only when explicit first-person evidence exists in transcript or summary.",
        "- If evidence is weak or ambiguous, use null / empty arrays.",
        "- Do not infer medical diagnoses, legal claims, or protected attributes.",
        "- Keep avoidTopics entries short (max 4 words), lowercase, deduplicated.",
        f"- notesAppend must be <= {NOTES_MAX_CHARS} characters.",
    ]
)

SUMMARY_SYSTEM_PROMPT = (
    f"You summarize journals into a short headline and {SUMMARY_MIN_BULLETS}-{SUMMARY_MAX_BULLETS} concise bullets."
)

KIND_GUIDANCE: dict[QuestionKind, str] = {
    QuestionKind.DEFAULT: "Ask a broadly reflective question grounded in the text.",
    QuestionKind.FOLLOW_UP: "Ask a follow-up that builds on the user's recent text.",
    QuestionKind.NEW_TOPIC: "Shift to a different topic than the last question. Do not follow up on it.",
}

PROACTIVITY_GUIDANCE: dict[Proactivity, str] = {
    Proactivity.LOW: "Be gentle and avoid pushing into sensitive detail.",
    Proactivity.MEDIUM: "Be balanced and supportive.",
    Proactivity.HIGH: "Be more direct and specific while staying respectful.",
}

PROFILE_PATCH_SHAPE = {
    "shouldUpdate": True,
    "profilePatch": {
        "displayName": "string|null",
        "tone": "gentle|balanced|direct|null",
        "proactivity": "low|medium|high|null",
        "avoidTopicsAdd": ["string"],
        "avoidTopicsRemove": ["string"],
        "notesAppend": "string|null",
    },
}


def build_validation_prompt(question: str, recent_text: str) -> str:
    return "\n".join(
        [
            "Return strict JSON with keys: answered (boolean), confidence (0-1), reason (short string).",
            "Answer true only if the recent text clearly answers the question.",
            "Question:",
            question,
            "Recent text:",
            recent_text,
        ]
    )


def build_question_prompt(
    *,
    preferred_kind: QuestionKind,
    tone: Tone,
    proactivity: Proactivity,
    avoid_topics: Sequence[str],
    memory_notes: Sequence[str],
    last_question: str,
    recent_text: str,
    draft_text: str,
    recent_sessions: Sequence[tuple[str, str]],
) -> str:
    """Build the next-question prompt.

    Memory notes are soft context; the live transcript always takes priority.
    ``recent_sessions`` holds ``(title, snippet)`` pairs.
    """
    memory_context = "\n".join(
        f"- {truncate(note, NOTES_MAX_CHARS)}" for note in memory_notes[-QUESTION_CONTEXT_MEMORY_NOTES:]
    )
    session_context = "\n".join(
        line
        for line in (
            f"- Session {index}: {title.strip()} {snippet.strip()}".strip()
            for index, (title, snippet) in enumerate(recent_sessions, start=1)
        )
        if line
    )

    lines = [
        f"Output ONLY the question in English, under {QUESTION_MAX_WORDS} words, ending with '?'",
        "Use profile memory as soft context only. Prioritize the current transcript.",
        f"Tone: {tone.value}. {PROACTIVITY_GUIDANCE[proactivity]}",
        f"Topics to avoid: {', '.join(avoid_topics)}." if avoid_topics else "",
        f"User memory notes:\n{memory_context}" if memory_context else "",
        KIND_GUIDANCE[preferred_kind],
        f"Last question: {last_question}" if last_question else "",
        "Recent text:",
        truncate(recent_text, QUESTION_CONTEXT_RECENT_CHARS),
        "Draft so far:",
        truncate(draft_text, QUESTION_CONTEXT_DRAFT_CHARS),
        f"Recent sessions:\n{session_context}" if session_context else "",
    ]
    return "\n".join(line for line in lines if line)


def build_profile_memory_prompt(
    *,
    profile_json: dict[str, Any],
    state_json: dict[str, Any],
    session_id: str,
    headline: str,
    bullets: Sequence[str],
    transcript: str,
) -> str:
    return "\n".join(
        [
            "Current profile JSON:",
            json.dumps(profile_json),
            "",
            "Current state JSON:",
            json.dumps(state_json),
            "",
            "Session:",
            f"- session_id: {session_id}",
            f"- summary_headline: {headline}",
            f"- summary_bullets: {json.dumps(list(bullets))}",
            "",
            "Transcript:",
            transcript,
            "",
            "Return JSON with this shape:",
            json.dumps(PROFILE_PATCH_SHAPE, indent=2),
        ]
    )


def build_summary_prompt(transcript: str, title: str | None = None) -> str:
    lines = [
        "Summarize this journal into JSON with keys: headline, bullets.",
        f"headline: <= {SUMMARY_HEADLINE_MAX_CHARS} characters.",
        f"bullets: {SUMMARY_MIN_BULLETS}-{SUMMARY_MAX_BULLETS} concise statements.",
        "Return ONLY valid JSON.",
    ]
    if title and title.strip():
        lines.append(f"Title: {title.strip()}")
    lines.extend(["Journal:", transcript])
    return "\n".join(lines)

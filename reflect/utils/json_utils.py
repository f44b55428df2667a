"""Helpers for pulling a JSON object out of raw LLM text."""

from __future__ import annotations

import json
import re
from typing import Any

_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def strip_json_wrappers(text: str) -> str:
    """Remove common formatting wrappers (e.g., markdown code fences) from JSON strings."""

    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    return cleaned.strip()


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_object(text: Any) -> dict[str, Any] | None:
    """Parse a JSON object from model output.

    Tries the whole (unfenced) text first, then the outermost ``{...}`` block
    to tolerate prose around the payload. Anything that is not an object is
    treated as unparsable.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    cleaned = strip_json_wrappers(text)
    direct = _loads_object(cleaned)
    if direct is not None:
        return direct

    match = _OBJECT_RE.search(cleaned)
    if match is None:
        return None
    return _loads_object(match.group(0))

"""Session summary value type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SummaryPayload:
    """Short end-of-session summary: a headline plus two to four bullets."""

    headline: str
    bullets: tuple[str, ...]

    def to_json(self) -> dict[str, Any]:
        return {"headline": self.headline, "bullets": list(self.bullets)}

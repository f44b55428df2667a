"""Curated fallback questions used whenever generation fails or is rejected."""

from __future__ import annotations

import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from reflect.models.questions import QuestionTemplate
from reflect.services.question_text import mentions_topic

CURATED_QUESTIONS: tuple[QuestionTemplate, ...] = (
    QuestionTemplate("What felt most important today?", "values"),
    QuestionTemplate("What moment stayed with you the most?", "event"),
    QuestionTemplate("What felt heavier than you expected?", "emotion"),
    QuestionTemplate("What gave you a small sense of progress?", "action"),
    QuestionTemplate("What are you grateful for right now?", "gratitude"),
    QuestionTemplate("Who influenced your day the most?", "relationships"),
    QuestionTemplate("What did your body need today?", "health"),
    QuestionTemplate("What took most of your energy?", "work"),
    QuestionTemplate("What would you want to remember from today?", "values"),
    QuestionTemplate("What surprised you today?", "event"),
    QuestionTemplate("What did you avoid today?", "cause"),
    QuestionTemplate("What helped you feel grounded?", "emotion"),
)


@dataclass(frozen=True)
class QuestionPool:
    """An immutable set of fallback templates."""

    questions: Sequence[QuestionTemplate] = CURATED_QUESTIONS

    def __post_init__(self) -> None:
        if not self.questions:
            raise ValueError("QuestionPool requires at least one question")

    def filtered(
        self,
        avoid_topics: Iterable[str],
        excluding_tags: Iterable[str] = (),
    ) -> list[QuestionTemplate]:
        """Templates that mention no avoid topic and carry no excluded coverage tag."""
        topics = [topic.lower() for topic in avoid_topics if topic]
        tags = set(excluding_tags)
        return [
            template
            for template in self.questions
            if template.coverage_tag not in tags and not mentions_topic(template.text, topics)
        ]

    def candidates(
        self,
        avoid_topics: Iterable[str],
        excluding_tags: Iterable[str] = (),
    ) -> list[QuestionTemplate]:
        """Never-empty candidate list.

        Excluded tags are relaxed first, then the avoid-topic filter: a
        question must always be produced.
        """
        topics = list(avoid_topics)
        return (
            self.filtered(topics, excluding_tags)
            or self.filtered(topics)
            or list(self.questions)
        )


def pick_fallback_question(
    avoid_topics: Iterable[str],
    *,
    pool: QuestionPool | None = None,
    rng: random.Random | None = None,
    excluding_tags: Iterable[str] = (),
) -> QuestionTemplate:
    """Pick one fallback template uniformly at random from the filtered pool.

    Args:
        avoid_topics: Topics the user asked not to discuss.
        pool: Question pool (defaults to the curated pool).
        rng: Randomness source; pass a seeded ``random.Random`` for reproducibility.
        excluding_tags: Coverage tags recently asked about.

    Returns:
        The selected template.
    """
    pool = pool or QuestionPool()
    rng = rng or random.Random()
    return rng.choice(pool.candidates(avoid_topics, excluding_tags))

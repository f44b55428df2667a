"""Application-wide constants and defaults."""

from reflect.models.contracts import Proactivity

# Question text limits
QUESTION_MAX_WORDS = 15
QUESTION_CONTEXT_RECENT_CHARS = 800
QUESTION_CONTEXT_DRAFT_CHARS = 1200
QUESTION_CONTEXT_MEMORY_NOTES = 8
GENERATED_COVERAGE_TAG = "auto"

# Profile normalization limits
TOPIC_MAX_WORDS = 4
TOPIC_MAX_ITEMS = 24
DISPLAY_NAME_MAX_CHARS = 80
NOTES_MAX_CHARS = 220
MEMORY_NOTES_MAX_ITEMS = 50
PROFILE_SCHEMA_VERSION = 1

# Summary limits
SUMMARY_HEADLINE_MAX_CHARS = 60
SUMMARY_MIN_BULLETS = 2
SUMMARY_MAX_BULLETS = 4
SUMMARY_DEFAULT_HEADLINE = "Journal reflection"

# Trigger gate timing (seconds)
MIN_START_DELAY_SECONDS = 10.0
SILENCE_THRESHOLD_SECONDS = 4.5
MINIMUM_INTERVAL_SECONDS: dict[Proactivity, float] = {
    Proactivity.LOW: 60.0,
    Proactivity.MEDIUM: 30.0,
    Proactivity.HIGH: 20.0,
}

# Trigger gate transcript heuristics
SENTENCE_MIN_WORDS = 4
RECENT_TEXT_LINES = 3
SEEN_SENTENCE_LIMIT = 256

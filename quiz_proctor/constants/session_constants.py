"""Session-related constants shared across the core services."""

TICK_INTERVAL_SECONDS: float = 1.0
VIOLATION_LIMIT: int = 3
FOCUS_GRACE_SECONDS: float = 0.3
FULLSCREEN_GRACE_SECONDS: float = 0.5

DEFAULT_QUESTION_POINTS: float = 10
TEXT_PARTIAL_CREDIT: float = 0.5
DEFAULT_QUESTION_TEXT: str = "Untitled Question"
DEFAULT_RESULTS_TITLE: str = "Quiz Results"

# Stored durations (local index and remote rows) are expressed in minutes.
SECONDS_PER_DURATION_UNIT: int = 60

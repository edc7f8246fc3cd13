"""Network configuration constants for the quiz application."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
DEFAULT_REMOTE_TIMEOUT_SECONDS: float = 10.0
NOTIFICATION_FUNCTION_NAME: str = "send-quiz-confirmation"

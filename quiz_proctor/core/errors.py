"""Exception taxonomy for the exam session engine."""

from __future__ import annotations

from typing import Any, Callable


class QuizProctorError(Exception):
    """Base class for every error raised by the engine."""


class NotFoundError(QuizProctorError):
    """Raised when quiz content could not be resolved from any source.

    ``code`` is one of ``quiz-not-found``, ``questions-not-found`` or
    ``storage-corrupt``. ``retry()`` restarts resolution from the first source.
    """

    QUIZ_NOT_FOUND = "quiz-not-found"
    QUESTIONS_NOT_FOUND = "questions-not-found"
    STORAGE_CORRUPT = "storage-corrupt"

    def __init__(
        self,
        code: str,
        quiz_id: str,
        message: str | None = None,
        retry: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(message or f"{code}: {quiz_id}")
        self.code = code
        self.quiz_id = quiz_id
        self._retry = retry

    @property
    def retryable(self) -> bool:
        return self._retry is not None

    def retry(self) -> Any:
        if self._retry is None:
            raise RuntimeError("This error has no retry handler attached.")
        return self._retry()


class ValidationError(QuizProctorError):
    """Raised when registration input is malformed."""

    def __init__(self, errors: dict[str, str]) -> None:
        summary = "; ".join(f"{field}: {reason}" for field, reason in errors.items())
        super().__init__(summary or "Invalid input.")
        self.errors = dict(errors)


class StorageError(QuizProctorError):
    """Raised when the local durable cache cannot be read or written."""


class TransientRemoteError(QuizProctorError):
    """Raised for network or remote-store failures; always recoverable."""


class SecurityTermination(QuizProctorError):
    """Marks a session forcibly completed because of proctoring violations.

    Not a failure: it is recorded as the session's termination reason and never
    propagates out of the state machine.
    """

    def __init__(self, violation_count: int) -> None:
        super().__init__(f"Session terminated after {violation_count} violations.")
        self.violation_count = violation_count

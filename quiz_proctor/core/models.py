"""Domain models for the exam session engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single-choice"
    TRUE_FALSE = "true-false"
    SHORT_TEXT = "short-text"
    LONG_TEXT = "long-text"

    @property
    def is_choice(self) -> bool:
        return self in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE)


@dataclass(slots=True)
class AnswerOption:
    """One selectable option of a choice question."""

    id: str
    text: str
    is_correct: bool = False

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "text": self.text, "isCorrect": self.is_correct}


@dataclass(slots=True)
class Question:
    """A quiz question in its strict, sanitized shape."""

    id: str
    text: str
    type: QuestionType
    options: list[AnswerOption] = field(default_factory=list)
    points: float = 10
    required: bool = False

    def correct_option(self) -> AnswerOption | None:
        return next((option for option in self.options if option.is_correct), None)

    def has_option(self, option_id: str) -> bool:
        return any(option.id == option_id for option in self.options)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
            "options": [option.to_dict() for option in self.options],
            "points": self.points,
            "required": self.required,
        }


@dataclass(frozen=True, slots=True)
class QuizMeta:
    """Quiz metadata; never mutated once a session has started."""

    id: str
    title: str
    description: str = ""
    duration_seconds: int = 0
    created_at: str | None = None
    question_count: int = 0
    embedded_questions: tuple[Question, ...] = ()


@dataclass(slots=True)
class ResolvedQuiz:
    """Outcome of a successful resolution."""

    meta: QuizMeta
    questions: list[Question]
    degraded: bool = False
    question_source: str = "remote"


@dataclass(slots=True)
class StudentIdentity:
    name: str = ""
    student_id: str = ""
    email: str = ""


@dataclass(slots=True)
class AnswerRecord:
    """Per-question answer; exactly one of the value fields is populated."""

    question_id: str
    selected_option_id: str | None = None
    text_answer: str | None = None
    is_correct: bool | None = None
    points_awarded: float | None = None

    @property
    def is_answered(self) -> bool:
        if self.selected_option_id:
            return True
        return bool(self.text_answer and self.text_answer.strip())

    @property
    def value(self) -> str | None:
        return self.selected_option_id if self.selected_option_id is not None else self.text_answer

    def to_dict(self) -> dict[str, object]:
        return {
            "questionId": self.question_id,
            "selectedOptionId": self.selected_option_id,
            "textAnswer": self.text_answer,
            "isCorrect": self.is_correct,
            "pointsAwarded": self.points_awarded,
        }


@dataclass(slots=True)
class SessionResult:
    """Scored outcome of one session; one logical result per (quiz, student)."""

    quiz_id: str
    student_id: str
    student_name: str
    score: float
    total_points: float
    percentage: int
    answers: list[AnswerRecord]
    submitted_at: datetime
    security_violations: int = 0
    completed: bool = True
    student_email: str | None = None
    quiz_title: str | None = None
    correct_answers: dict[str, str | None] = field(default_factory=dict)

    @property
    def identity(self) -> tuple[str, str, datetime]:
        return (self.student_id, self.quiz_id, self.submitted_at)

    def to_dict(self) -> dict[str, object]:
        return {
            "quizId": self.quiz_id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "studentEmail": self.student_email,
            "score": self.score,
            "totalPoints": self.total_points,
            "percentage": self.percentage,
            "answers": [answer.to_dict() for answer in self.answers],
            "correctAnswers": dict(self.correct_answers),
            "submittedAt": format_timestamp(self.submitted_at),
            "securityViolations": self.security_violations,
            "completed": self.completed,
            "quizTitle": self.quiz_title,
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(raw: object) -> datetime | None:
    """Parse an ISO-8601 timestamp as stored locally or returned remotely."""
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def compute_percentage(score: float, total_points: float) -> int:
    if total_points <= 0:
        return 0
    return round(score / total_points * 100)

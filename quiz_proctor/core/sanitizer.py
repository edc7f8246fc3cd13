"""Normalization of stored and remote JSON into the strict domain shapes.

Data read from the local cache accumulated across several historical formats
(different type names, answers stored as a mapping or as a list, missing ids),
and remote rows use snake_case column names. Everything that enters the core
goes through this module first; nothing here raises on malformed input.
"""

from __future__ import annotations

import logging
import math
from typing import Any
from uuid import uuid4

from quiz_proctor.constants.session_constants import (
    DEFAULT_QUESTION_POINTS,
    DEFAULT_QUESTION_TEXT,
    SECONDS_PER_DURATION_UNIT,
)
from quiz_proctor.core.models import (
    AnswerOption,
    AnswerRecord,
    Question,
    QuestionType,
    QuizMeta,
    SessionResult,
    compute_percentage,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

_TYPE_ALIASES: dict[str, QuestionType] = {
    "single-choice": QuestionType.SINGLE_CHOICE,
    "multiple-choice": QuestionType.SINGLE_CHOICE,
    "single": QuestionType.SINGLE_CHOICE,
    "choice": QuestionType.SINGLE_CHOICE,
    "mcq": QuestionType.SINGLE_CHOICE,
    "radio": QuestionType.SINGLE_CHOICE,
    "true-false": QuestionType.TRUE_FALSE,
    "truefalse": QuestionType.TRUE_FALSE,
    "boolean": QuestionType.TRUE_FALSE,
    "bool": QuestionType.TRUE_FALSE,
    "tf": QuestionType.TRUE_FALSE,
    "short-text": QuestionType.SHORT_TEXT,
    "short-answer": QuestionType.SHORT_TEXT,
    "short": QuestionType.SHORT_TEXT,
    "text": QuestionType.SHORT_TEXT,
    "long-text": QuestionType.LONG_TEXT,
    "long-answer": QuestionType.LONG_TEXT,
    "long": QuestionType.LONG_TEXT,
    "essay": QuestionType.LONG_TEXT,
    "paragraph": QuestionType.LONG_TEXT,
}

TRUE_OPTION_ID = "true"
FALSE_OPTION_ID = "false"
MIN_CHOICE_OPTIONS = 2

_TRUE_LABELS = {"true", "t", "yes", "1"}
_FALSE_LABELS = {"false", "f", "no", "0"}


def coerce_question_type(raw: Any) -> QuestionType:
    if isinstance(raw, QuestionType):
        return raw
    if not isinstance(raw, str):
        return QuestionType.SINGLE_CHOICE
    key = raw.strip().lower().replace("_", "-").replace(" ", "-")
    return _TYPE_ALIASES.get(key, QuestionType.SINGLE_CHOICE)


def canonical_true_false_options(correct: bool | None = None) -> list[AnswerOption]:
    return [
        AnswerOption(id=TRUE_OPTION_ID, text="True", is_correct=correct is True),
        AnswerOption(id=FALSE_OPTION_ID, text="False", is_correct=correct is False),
    ]


def sanitize_question(raw: Any) -> Question:
    """Fill missing fields with safe defaults and coerce the question type."""
    data = raw if isinstance(raw, dict) else {}
    question_type = coerce_question_type(data.get("type"))

    question_id = _clean_str(data.get("id")) or f"q-{uuid4().hex[:8]}"
    text = _clean_str(data.get("text")) or DEFAULT_QUESTION_TEXT

    options: list[AnswerOption] = []
    if question_type.is_choice:
        options = _sanitize_options(data.get("options"))
        if question_type is QuestionType.TRUE_FALSE:
            options = _canonicalize_true_false(options)
        else:
            options = _pad_choice_options(options)

    return Question(
        id=question_id,
        text=text,
        type=question_type,
        options=options,
        points=_non_negative_number(data.get("points"), DEFAULT_QUESTION_POINTS),
        required=bool(data.get("required", False)),
    )


def sanitize_questions(raw: Any) -> list[Question]:
    if not isinstance(raw, list):
        return []
    return [sanitize_question(item) for item in raw]


def _sanitize_options(raw: Any) -> list[AnswerOption]:
    if not isinstance(raw, list):
        return []
    options: list[AnswerOption] = []
    seen_correct = False
    for index, item in enumerate(raw):
        if isinstance(item, str):
            item = {"text": item}
        if not isinstance(item, dict):
            continue
        is_correct = bool(item.get("isCorrect", item.get("is_correct", False)))
        # only the first flagged option stays correct
        if is_correct and seen_correct:
            is_correct = False
        seen_correct = seen_correct or is_correct
        options.append(
            AnswerOption(
                id=_clean_str(item.get("id")) or str(index + 1),
                text=_clean_str(item.get("text")) or f"Option {index + 1}",
                is_correct=is_correct,
            )
        )
    return options


def _canonicalize_true_false(options: list[AnswerOption]) -> list[AnswerOption]:
    """Map whatever options were stored onto the ``true``/``false`` pair."""
    correct = next((option for option in options if option.is_correct), None)
    if correct is None:
        return canonical_true_false_options()
    # the label text decides before the id, which is often positional
    for label in (correct.text.lower(), correct.id.lower()):
        if label in _TRUE_LABELS:
            return canonical_true_false_options(correct=True)
        if label in _FALSE_LABELS:
            return canonical_true_false_options(correct=False)
    return canonical_true_false_options()


def _pad_choice_options(options: list[AnswerOption]) -> list[AnswerOption]:
    """Single-choice questions always offer at least two options."""
    padded = list(options)
    taken = {option.id for option in padded}
    candidate = len(padded)
    while len(padded) < MIN_CHOICE_OPTIONS:
        candidate += 1
        if str(candidate) in taken:
            continue
        padded.append(AnswerOption(id=str(candidate), text=f"Option {candidate}"))
        taken.add(str(candidate))
    return padded


def quiz_meta_from_index_entry(raw: Any) -> QuizMeta | None:
    """Build quiz metadata from one entry of the local quiz index."""
    if not isinstance(raw, dict):
        return None
    quiz_id = _clean_str(raw.get("id"))
    if not quiz_id:
        return None

    embedded: tuple[Question, ...] = ()
    declared = raw.get("questions")
    if isinstance(declared, list):
        embedded = tuple(sanitize_questions(declared))
        question_count = len(embedded)
    else:
        question_count = int(_non_negative_number(declared, 0))

    duration = raw.get("durationSeconds")
    if duration is None:
        duration = _non_negative_number(raw.get("duration"), 0) * SECONDS_PER_DURATION_UNIT

    return QuizMeta(
        id=quiz_id,
        title=_clean_str(raw.get("title")) or "Untitled Quiz",
        description=_clean_str(raw.get("description")),
        duration_seconds=int(_non_negative_number(duration, 0)),
        created_at=_clean_str(raw.get("created") or raw.get("createdAt")) or None,
        question_count=question_count,
        embedded_questions=embedded,
    )


def quiz_meta_from_remote_row(row: dict[str, Any]) -> QuizMeta:
    minutes = _non_negative_number(row.get("time_limit"), 0)
    return QuizMeta(
        id=str(row["id"]),
        title=_clean_str(row.get("title")) or "Untitled Quiz",
        description=_clean_str(row.get("description")),
        duration_seconds=int(minutes * SECONDS_PER_DURATION_UNIT),
        created_at=_clean_str(row.get("created_at")) or None,
    )


def questions_from_remote_rows(
    question_rows: list[dict[str, Any]], option_rows: list[dict[str, Any]]
) -> list[Question]:
    """Join remote question and option rows, honouring ``order_number``."""
    options_by_question: dict[str, list[dict[str, Any]]] = {}
    for option in sorted(option_rows, key=lambda row: row.get("order_number") or 0):
        options_by_question.setdefault(str(option.get("question_id")), []).append(
            {"id": option.get("id"), "text": option.get("text"), "isCorrect": option.get("is_correct")}
        )
    questions = []
    for row in sorted(question_rows, key=lambda row: row.get("order_number") or 0):
        questions.append(
            sanitize_question(
                {
                    "id": row.get("id"),
                    "text": row.get("text"),
                    "type": row.get("type"),
                    "points": row.get("points"),
                    "required": row.get("required"),
                    "options": options_by_question.get(str(row.get("id")), []),
                }
            )
        )
    return questions


def result_from_cache_entry(raw: Any, quiz_id: str) -> SessionResult | None:
    """Normalize one stored result; entries without identity are dropped."""
    if not isinstance(raw, dict):
        return None
    student_id = _clean_str(raw.get("studentId"))
    submitted_at = parse_timestamp(raw.get("submittedAt"))
    if not student_id or submitted_at is None:
        logger.warning("Dropping malformed cached result for quiz %s: %r", quiz_id, raw)
        return None

    score = _non_negative_number(raw.get("score"), 0)
    total_points = _non_negative_number(raw.get("totalPoints"), 0)
    return SessionResult(
        quiz_id=_clean_str(raw.get("quizId")) or quiz_id,
        student_id=student_id,
        student_name=_clean_str(raw.get("studentName")),
        student_email=_clean_str(raw.get("studentEmail")) or None,
        score=score,
        total_points=total_points,
        percentage=compute_percentage(score, total_points),
        answers=_answers_from_cache(raw.get("answers")),
        correct_answers=_correct_answers_from_cache(raw.get("correctAnswers")),
        submitted_at=submitted_at,
        security_violations=int(_non_negative_number(raw.get("securityViolations"), 0)),
        completed=bool(raw.get("completed", False)),
        quiz_title=_clean_str(raw.get("quizTitle")) or None,
    )


def result_from_attempt_row(row: dict[str, Any], quiz_title: str | None = None) -> SessionResult | None:
    submitted_at = parse_timestamp(row.get("submitted_at"))
    student_id = _clean_str(row.get("student_id"))
    if not student_id or submitted_at is None:
        return None
    score = _non_negative_number(row.get("score"), 0)
    total_points = _non_negative_number(row.get("total_points"), 0)
    return SessionResult(
        quiz_id=str(row.get("quiz_id")),
        student_id=student_id,
        student_name=_clean_str(row.get("student_name")),
        student_email=_clean_str(row.get("student_email")) or None,
        score=score,
        total_points=total_points,
        percentage=compute_percentage(score, total_points),
        answers=[],
        submitted_at=submitted_at,
        security_violations=int(_non_negative_number(row.get("security_violations"), 0)),
        completed=bool(row.get("completed", False)),
        quiz_title=quiz_title,
    )


def _answers_from_cache(raw: Any) -> list[AnswerRecord]:
    # Older entries stored a {questionId: value} mapping.
    if isinstance(raw, dict):
        return [
            AnswerRecord(question_id=str(question_id), text_answer=str(value))
            for question_id, value in raw.items()
            if value is not None
        ]
    if not isinstance(raw, list):
        return []
    answers = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("questionId"):
            continue
        answers.append(
            AnswerRecord(
                question_id=str(item["questionId"]),
                selected_option_id=_clean_str(item.get("selectedOptionId")) or None,
                text_answer=item["textAnswer"] if isinstance(item.get("textAnswer"), str) else None,
                is_correct=item["isCorrect"] if isinstance(item.get("isCorrect"), bool) else None,
                points_awarded=_non_negative_number(item.get("pointsAwarded"), None),
            )
        )
    return answers


def _correct_answers_from_cache(raw: Any) -> dict[str, str | None]:
    if not isinstance(raw, dict):
        return {}
    return {
        str(question_id): _clean_str(option_id) or None
        for question_id, option_id in raw.items()
        if option_id is None or isinstance(option_id, (str, int))
    }


def _clean_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _non_negative_number(value: Any, default: float | None) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value) or value < 0:
        return default
    return value

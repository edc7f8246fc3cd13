"""Deterministic scoring of collected answers."""

from __future__ import annotations

from dataclasses import dataclass

from quiz_proctor.constants.session_constants import TEXT_PARTIAL_CREDIT
from quiz_proctor.core.models import AnswerRecord, Question


@dataclass(slots=True)
class ScoreSummary:
    score: float
    total_points: float
    graded_answers: list[AnswerRecord]


def grade_answer(
    question: Question,
    answer: AnswerRecord | None,
    text_partial_credit: float = TEXT_PARTIAL_CREDIT,
) -> AnswerRecord:
    """Return a graded copy of ``answer`` (or an empty record when unanswered).

    Choice answers earn full points only when they select the flagged option.
    Text answers earn a fixed fraction pending manual review and are never
    marked correct.
    """
    if answer is None or not answer.is_answered:
        return AnswerRecord(question_id=question.id, is_correct=False, points_awarded=0)

    if question.type.is_choice:
        correct = question.correct_option()
        is_correct = correct is not None and answer.selected_option_id == correct.id
        return AnswerRecord(
            question_id=question.id,
            selected_option_id=answer.selected_option_id,
            is_correct=is_correct,
            points_awarded=question.points if is_correct else 0,
        )

    return AnswerRecord(
        question_id=question.id,
        text_answer=answer.text_answer,
        is_correct=None,
        points_awarded=question.points * text_partial_credit,
    )


def score(
    questions: list[Question],
    answers: dict[str, AnswerRecord],
    text_partial_credit: float = TEXT_PARTIAL_CREDIT,
) -> ScoreSummary:
    total_points = 0.0
    earned = 0.0
    graded: list[AnswerRecord] = []
    for question in questions:
        total_points += question.points
        record = grade_answer(question, answers.get(question.id), text_partial_credit)
        earned += record.points_awarded or 0
        graded.append(record)
    return ScoreSummary(score=earned, total_points=total_points, graded_answers=graded)


def correct_answer_key(questions: list[Question]) -> dict[str, str | None]:
    key: dict[str, str | None] = {}
    for question in questions:
        correct = question.correct_option() if question.type.is_choice else None
        key[question.id] = correct.id if correct is not None else None
    return key

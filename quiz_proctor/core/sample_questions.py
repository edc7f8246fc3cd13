"""Deterministic placeholder questions used when no stored set exists."""

from __future__ import annotations

from quiz_proctor.constants.session_constants import DEFAULT_QUESTION_POINTS
from quiz_proctor.core.models import AnswerOption, Question, QuestionType
from quiz_proctor.core.sanitizer import canonical_true_false_options

_TYPE_CYCLE = (
    QuestionType.SINGLE_CHOICE,
    QuestionType.TRUE_FALSE,
    QuestionType.SHORT_TEXT,
    QuestionType.LONG_TEXT,
)
_CHOICE_LABELS = ("A", "B", "C", "D")


def generate_sample_questions(count: int) -> list[Question]:
    """Return ``count`` questions (at least one), cycling through every type.

    Only the first single-choice question has a correct option; true-false
    samples use the canonical ids with ``false`` marked correct. Every question
    except the last is required.
    """
    count = max(1, count)
    questions: list[Question] = []
    for index in range(count):
        question_type = _TYPE_CYCLE[index % len(_TYPE_CYCLE)]
        if question_type is QuestionType.SINGLE_CHOICE:
            options = [
                AnswerOption(id=str(position + 1), text=f"Option {label}", is_correct=index == 0 and position == 0)
                for position, label in enumerate(_CHOICE_LABELS)
            ]
        elif question_type is QuestionType.TRUE_FALSE:
            options = canonical_true_false_options(correct=False)
        else:
            options = []
        questions.append(
            Question(
                id=str(index + 1),
                text=f"Question {index + 1}: This is a sample {question_type.value} question.",
                type=question_type,
                options=options,
                points=DEFAULT_QUESTION_POINTS,
                required=index < count - 1,
            )
        )
    return questions

from __future__ import annotations

from quiz_proctor.core.models import QuestionType
from quiz_proctor.core.sanitizer import (
    coerce_question_type,
    questions_from_remote_rows,
    quiz_meta_from_index_entry,
    result_from_attempt_row,
    result_from_cache_entry,
    sanitize_question,
)


def test_legacy_type_names_are_mapped():
    assert coerce_question_type("multiple_choice") is QuestionType.SINGLE_CHOICE
    assert coerce_question_type("boolean") is QuestionType.TRUE_FALSE
    assert coerce_question_type("Short Answer") is QuestionType.SHORT_TEXT
    assert coerce_question_type("essay") is QuestionType.LONG_TEXT
    assert coerce_question_type(None) is QuestionType.SINGLE_CHOICE
    assert coerce_question_type("nonsense") is QuestionType.SINGLE_CHOICE


def test_missing_fields_get_defaults():
    question = sanitize_question({"type": "short-text", "points": -4})

    assert question.id
    assert question.text == "Untitled Question"
    assert question.points == 10
    assert question.options == []
    assert question.required is False


def test_only_first_flagged_option_stays_correct():
    question = sanitize_question(
        {
            "id": "q",
            "text": "Pick",
            "type": "single-choice",
            "options": [
                {"id": "a", "text": "A", "isCorrect": True},
                {"id": "b", "text": "B", "isCorrect": True},
                "C",
            ],
        }
    )

    assert [option.is_correct for option in question.options] == [True, False, False]
    assert question.options[2].id == "3"
    assert question.correct_option().id == "a"


def test_true_false_without_options_gets_canonical_pair():
    question = sanitize_question({"id": "tf", "text": "Sky is blue", "type": "true-false"})

    assert [option.id for option in question.options] == ["true", "false"]


def test_index_entry_duration_is_minutes_and_embedded_questions_parsed():
    meta = quiz_meta_from_index_entry(
        {
            "id": "quiz-7",
            "title": "Local quiz",
            "duration": 2,
            "questions": [{"id": "q1", "text": "One", "type": "short"}],
        }
    )

    assert meta.duration_seconds == 120
    assert meta.question_count == 1
    assert meta.embedded_questions[0].type is QuestionType.SHORT_TEXT
    assert quiz_meta_from_index_entry({"title": "no id"}) is None


def test_remote_rows_are_joined_in_order():
    questions = questions_from_remote_rows(
        [
            {"id": "q2", "text": "Second", "type": "true-false", "order_number": 2},
            {"id": "q1", "text": "First", "type": "single-choice", "order_number": 1, "points": 5},
        ],
        [
            {"id": "o2", "question_id": "q1", "text": "No", "is_correct": False, "order_number": 2},
            {"id": "o1", "question_id": "q1", "text": "Yes", "is_correct": True, "order_number": 1},
        ],
    )

    assert [question.id for question in questions] == ["q1", "q2"]
    assert [option.id for option in questions[0].options] == ["o1", "o2"]
    assert questions[0].points == 5
    assert [option.id for option in questions[1].options] == ["true", "false"]


def test_cached_result_with_legacy_answer_mapping():
    result = result_from_cache_entry(
        {
            "studentId": "S1",
            "studentName": "Ana",
            "score": 5,
            "totalPoints": 20,
            "submittedAt": "2024-03-01T10:00:00Z",
            "answers": {"q1": "A"},
            "completed": True,
        },
        "quiz-1",
    )

    assert result.quiz_id == "quiz-1"
    assert result.percentage == 25
    assert result.answers[0].question_id == "q1"
    assert result.submitted_at.tzinfo is not None


def test_cached_result_without_identity_is_dropped():
    assert result_from_cache_entry({"studentName": "Ghost"}, "quiz-1") is None
    assert result_from_cache_entry({"studentId": "S1", "submittedAt": "yesterday"}, "quiz-1") is None


def test_single_choice_is_padded_to_two_options():
    lone = sanitize_question({"id": "q", "text": "Pick", "type": "single-choice", "options": [{"id": "2", "text": "Only"}]})
    empty = sanitize_question({"id": "q", "text": "Pick", "type": "single-choice"})

    assert [option.id for option in lone.options] == ["2", "3"]
    assert [option.id for option in empty.options] == ["1", "2"]
    assert not any(option.is_correct for option in empty.options)


def test_true_false_options_are_mapped_to_canonical_ids():
    question = sanitize_question(
        {
            "id": "tf",
            "text": "Water is wet",
            "type": "true-false",
            "options": [
                {"id": "1", "text": "False", "isCorrect": True},
                {"id": "2", "text": "True"},
                {"id": "3", "text": "Maybe"},
            ],
        }
    )

    assert [option.id for option in question.options] == ["true", "false"]
    assert question.correct_option().id == "false"


def test_malformed_cached_fields_fall_back_to_defaults():
    base = {"studentId": "S1", "submittedAt": "2024-03-01T10:00:00Z"}

    for bad in (
        {"correctAnswers": "x"},
        {"correctAnswers": 5},
        {"securityViolations": float("inf")},
        {"securityViolations": "three"},
        {"answers": [{"questionId": "q1", "selectedOptionId": 7, "pointsAwarded": "ten", "isCorrect": "yes"}]},
    ):
        result = result_from_cache_entry({**base, **bad}, "quiz-1")
        assert result is not None
        assert result.security_violations == 0
        assert isinstance(result.correct_answers, dict)

    answer = result_from_cache_entry({**base, "answers": [{"questionId": "q1", "selectedOptionId": 7}]}, "quiz-1").answers[0]
    assert answer.selected_option_id == "7"
    assert answer.points_awarded is None


def test_malformed_attempt_row_violations_default_to_zero():
    row = {"quiz_id": "Q1", "student_id": "S1", "submitted_at": "2024-03-01T10:00:00Z", "security_violations": "many"}

    assert result_from_attempt_row(row).security_violations == 0

from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path

import pytest

from quiz_proctor.core.errors import StorageError
from quiz_proctor.core.key_value_store import InMemoryKeyValueStore, JsonFileKeyValueStore
from quiz_proctor.core.models import QuizMeta, SessionResult
from quiz_proctor.core.services.local_cache import LocalCache


def _result(student_id: str, minute: int, score: float = 10) -> SessionResult:
    return SessionResult(
        quiz_id="quiz-1",
        student_id=student_id,
        student_name=f"Student {student_id}",
        score=score,
        total_points=10,
        percentage=round(score * 10),
        answers=[],
        submitted_at=datetime(2024, 3, 1, 10, minute, tzinfo=timezone.utc),
    )


def test_upsert_replaces_prior_entry_for_same_student(cache, kv_store):
    cache.upsert_result(_result("S1", 0, score=4))
    cache.upsert_result(_result("S2", 1))
    cache.upsert_result(_result("S1", 5, score=8))

    stored = json.loads(kv_store.get("quiz_results_quiz-1"))
    assert [entry["studentId"] for entry in stored] == ["S2", "S1"]

    results = {result.student_id: result for result in cache.load_results("quiz-1")}
    assert results["S1"].score == 8
    assert results["S1"].submitted_at.minute == 5


def test_corrupt_results_raise_storage_error(kv_store):
    kv_store.set("quiz_results_quiz-1", "{not json")

    with pytest.raises(StorageError):
        LocalCache(kv_store).load_results("quiz-1")


def test_find_questions_skips_corrupt_and_empty_keys():
    store = InMemoryKeyValueStore(
        {
            "quiz_creator_questions_quiz-1": "[",
            "quiz_questions_quiz-1": json.dumps([{"id": "q1", "text": "Kept", "type": "long"}]),
        }
    )

    questions, key = LocalCache(store).find_questions("quiz-1")

    assert key == "quiz_questions_quiz-1"
    assert questions[0].text == "Kept"


def test_save_quiz_keeps_unowned_fields(cache, kv_store):
    kv_store.set("quizzes", json.dumps([{"id": "quiz-1", "title": "Old", "shareCode": "XYZ", "questions": 3}]))

    cache.save_quiz(QuizMeta(id="quiz-1", title="New", duration_seconds=300))

    entry = json.loads(kv_store.get("quizzes"))[0]
    assert entry["title"] == "New"
    assert entry["shareCode"] == "XYZ"
    assert entry["duration"] == 5
    assert entry["questions"] == 3


def test_json_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "cache.json"
    JsonFileKeyValueStore(path).set("quizzes", "[]")

    reopened = JsonFileKeyValueStore(path)

    assert reopened.get("quizzes") == "[]"
    assert reopened.keys() == ["quizzes"]


def test_json_file_store_rejects_garbage(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(StorageError):
        JsonFileKeyValueStore(path).get("quizzes")


def test_json_file_store_keeps_memory_in_step_with_disk_on_write_failure(tmp_path, monkeypatch):
    path = tmp_path / "cache.json"
    store = JsonFileKeyValueStore(path)
    store.set("quizzes", "[]")

    def fail_write(self, *args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(Path, "write_text", fail_write)

    with pytest.raises(StorageError):
        store.set("quiz_results_Q1", "[]")
    with pytest.raises(StorageError):
        store.remove("quizzes")

    assert store.get("quiz_results_Q1") is None
    assert store.get("quizzes") == "[]"

    monkeypatch.undo()
    reopened = JsonFileKeyValueStore(path)
    assert reopened.keys() == ["quizzes"]


def test_malformed_cached_entries_do_not_hide_good_ones(cache, kv_store):
    kv_store.set(
        "quiz_results_quiz-1",
        json.dumps(
            [
                {"studentId": "S1", "submittedAt": "2024-03-01T10:00:00Z", "correctAnswers": "x"},
                {"studentId": "S2", "submittedAt": "2024-03-01T10:05:00Z", "securityViolations": "lots"},
                {"studentId": "S3", "submittedAt": "2024-03-01T10:10:00Z", "score": 5, "totalPoints": 10},
            ]
        ),
    )

    results = cache.load_results("quiz-1")

    assert [result.student_id for result in results] == ["S1", "S2", "S3"]
    assert results[0].correct_answers == {}
    assert results[1].security_violations == 0
    assert results[2].percentage == 50

"""Service for reading and writing quiz data in the local durable cache."""

from __future__ import annotations

import json
import logging
from typing import Any

from quiz_proctor.constants.session_constants import SECONDS_PER_DURATION_UNIT
from quiz_proctor.constants.storage_keys import QUIZ_INDEX_KEY, question_keys, results_key
from quiz_proctor.core.errors import StorageError
from quiz_proctor.core.key_value_store import KeyValueStore
from quiz_proctor.core.models import Question, QuizMeta, SessionResult
from quiz_proctor.core.sanitizer import (
    quiz_meta_from_index_entry,
    result_from_cache_entry,
    sanitize_questions,
)

logger = logging.getLogger(__name__)


class LocalCache:
    """Typed access to the quiz index, legacy question keys and results."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    # --- Quiz index ---

    def find_quiz(self, quiz_id: str) -> QuizMeta | None:
        for entry in self._read_index():
            if isinstance(entry, dict) and str(entry.get("id")) == quiz_id:
                return quiz_meta_from_index_entry(entry)
        return None

    def save_quiz(self, meta: QuizMeta) -> None:
        """Insert or refresh the index entry, keeping fields this layer does not own."""
        try:
            index = self._read_index()
        except StorageError:
            logger.warning("Quiz index is corrupt; rebuilding it around quiz %s", meta.id)
            index = []
        existing = next(
            (entry for entry in index if isinstance(entry, dict) and str(entry.get("id")) == meta.id),
            None,
        )
        entry: dict[str, Any] = dict(existing or {})
        entry.update(
            {
                "id": meta.id,
                "title": meta.title,
                "description": meta.description,
                "duration": meta.duration_seconds / SECONDS_PER_DURATION_UNIT,
                "durationSeconds": meta.duration_seconds,
                "created": meta.created_at,
            }
        )
        if not isinstance(entry.get("questions"), (int, list)):
            entry["questions"] = meta.question_count
        if existing is None:
            index.append(entry)
        else:
            index[index.index(existing)] = entry
        self._write_json(QUIZ_INDEX_KEY, index)

    # --- Questions ---

    def find_questions(self, quiz_id: str) -> tuple[list[Question], str] | None:
        """Return the first non-empty question array among the legacy keys."""
        for key in question_keys(quiz_id):
            try:
                raw = self._read_json(key)
            except StorageError:
                logger.warning("Skipping unreadable question key %s", key)
                continue
            if isinstance(raw, list) and raw:
                return sanitize_questions(raw), key
        return None

    def save_questions(self, quiz_id: str, questions: list[Question]) -> None:
        payload = [question.to_dict() for question in questions]
        for key in question_keys(quiz_id):
            self._write_json(key, payload)
        logger.debug("Wrote %d questions for quiz %s to every question key", len(questions), quiz_id)

    # --- Results ---

    def load_results(self, quiz_id: str) -> list[SessionResult]:
        raw = self._read_json(results_key(quiz_id))
        if not isinstance(raw, list):
            return []
        results = []
        for item in raw:
            result = result_from_cache_entry(item, quiz_id)
            if result is not None:
                results.append(result)
        return results

    def upsert_result(self, result: SessionResult) -> None:
        """Replace every stored entry for the student with ``result``."""
        key = results_key(result.quiz_id)
        try:
            raw = self._read_json(key)
        except StorageError:
            logger.error("Results under %s are corrupt; overwriting them", key)
            raw = None
        entries = raw if isinstance(raw, list) else []
        kept = [
            entry
            for entry in entries
            if not (isinstance(entry, dict) and str(entry.get("studentId", "")).strip() == result.student_id)
        ]
        kept.append(result.to_dict())
        self._write_json(key, kept)

    # --- JSON plumbing ---

    def _read_index(self) -> list[Any]:
        raw = self._read_json(QUIZ_INDEX_KEY)
        return raw if isinstance(raw, list) else []

    def _read_json(self, key: str) -> Any:
        text = self._store.get(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Cache key {key!r} holds invalid JSON.") from exc

    def _write_json(self, key: str, value: Any) -> None:
        try:
            serialized = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Value for {key!r} is not JSON-serializable.") from exc
        self._store.set(key, serialized)

"""Service that assembles quiz content from the remote store and local cache."""

from __future__ import annotations

from dataclasses import replace
import logging

from quiz_proctor.core.errors import NotFoundError, StorageError, TransientRemoteError
from quiz_proctor.core.models import Question, QuizMeta, ResolvedQuiz
from quiz_proctor.core.sample_questions import generate_sample_questions
from quiz_proctor.core.sanitizer import quiz_meta_from_remote_row, questions_from_remote_rows
from quiz_proctor.core.services.local_cache import LocalCache
from quiz_proctor.core.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)

SOURCE_EMBEDDED = "embedded"
SOURCE_REMOTE = "remote"
SOURCE_SYNTHESIZED = "synthesized"


class QuizResolver:
    """Resolves ``(QuizMeta, questions)`` by trying each source in a fixed order.

    Metadata comes from the remote store, else from the local quiz index (which
    marks the resolution as degraded). Questions come from the metadata itself,
    the remote store, the legacy local keys, or are synthesized, in that order.
    The chosen question set is always written back to every local key.
    """

    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        synthesize_missing: bool = True,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._synthesize_missing = synthesize_missing

    def resolve(self, quiz_id: str) -> ResolvedQuiz:
        meta = self._fetch_remote_meta(quiz_id)
        remote_ok = meta is not None
        storage_corrupt = False

        if meta is None:
            try:
                meta = self._cache.find_quiz(quiz_id)
            except StorageError:
                logger.error("Local quiz index is unreadable while resolving %s", quiz_id)
                storage_corrupt = True
            if meta is not None:
                logger.warning("Quiz %s resolved from the local cache (degraded)", quiz_id)

        if meta is None:
            code = NotFoundError.STORAGE_CORRUPT if storage_corrupt else NotFoundError.QUIZ_NOT_FOUND
            raise NotFoundError(code, quiz_id, retry=lambda: self.resolve(quiz_id))

        questions, source = self._resolve_questions(meta, remote_ok)
        if not questions:
            raise NotFoundError(
                NotFoundError.QUESTIONS_NOT_FOUND, quiz_id, retry=lambda: self.resolve(quiz_id)
            )

        self._write_back(meta, questions, remote_ok)
        logger.info(
            "Resolved quiz %s with %d questions from %s%s",
            quiz_id,
            len(questions),
            source,
            " (degraded)" if not remote_ok else "",
        )
        return ResolvedQuiz(
            meta=replace(meta, question_count=len(questions), embedded_questions=()),
            questions=questions,
            degraded=not remote_ok,
            question_source=source,
        )

    def _fetch_remote_meta(self, quiz_id: str) -> QuizMeta | None:
        try:
            row = self._remote.fetch_quiz(quiz_id)
        except TransientRemoteError as exc:
            logger.info("Remote quiz lookup for %s failed: %s", quiz_id, exc)
            return None
        if not row:
            return None
        try:
            return quiz_meta_from_remote_row(row)
        except (KeyError, TypeError, ValueError):
            logger.warning("Remote quiz row for %s is malformed: %r", quiz_id, row)
            return None

    def _resolve_questions(self, meta: QuizMeta, remote_ok: bool) -> tuple[list[Question], str]:
        if meta.embedded_questions:
            return list(meta.embedded_questions), SOURCE_EMBEDDED

        if remote_ok:
            try:
                question_rows, option_rows = self._remote.fetch_questions(meta.id)
            except TransientRemoteError as exc:
                logger.info("Remote question lookup for %s failed: %s", meta.id, exc)
            else:
                questions = questions_from_remote_rows(question_rows, option_rows)
                if questions:
                    return questions, SOURCE_REMOTE

        cached = self._cache.find_questions(meta.id)
        if cached is not None:
            questions, key = cached
            return questions, key

        if not self._synthesize_missing:
            return [], SOURCE_SYNTHESIZED
        logger.warning("No stored questions for quiz %s; synthesizing samples", meta.id)
        return generate_sample_questions(meta.question_count or 1), SOURCE_SYNTHESIZED

    def _write_back(self, meta: QuizMeta, questions: list[Question], remote_ok: bool) -> None:
        try:
            self._cache.save_questions(meta.id, questions)
            if remote_ok:
                self._cache.save_quiz(replace(meta, question_count=len(questions)))
        except StorageError:
            logger.exception("Could not write quiz %s back to the local cache", meta.id)

"""Service that scores a finished session and persists the result.

Persistence is a dual write with asymmetric guarantees: the local cache is
written synchronously before ``submit`` returns, the remote store is written
by a background job whose outcome is only logged.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
import logging
from threading import Lock
from typing import Any, Callable

from quiz_proctor.constants.session_constants import TEXT_PARTIAL_CREDIT
from quiz_proctor.core.models import (
    AnswerRecord,
    Question,
    QuizMeta,
    SessionResult,
    StudentIdentity,
    compute_percentage,
    format_timestamp,
    utc_now,
)
from quiz_proctor.core.services.local_cache import LocalCache
from quiz_proctor.core.services.notifier import Notifier, SubmissionNotice
from quiz_proctor.core.services.remote_store import RemoteStore
from quiz_proctor.core.services.scoring import correct_answer_key, score

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubmissionRequest:
    quiz: QuizMeta
    questions: list[Question]
    answers: dict[str, AnswerRecord]
    student: StudentIdentity
    security_violations: int = 0
    completed: bool = True


@dataclass(slots=True)
class SubmissionOutcome:
    result: SessionResult
    replication: Future | None = field(default=None, repr=False)


class SubmissionEngine:
    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteStore,
        notifier: Notifier | None = None,
        executor: Executor | None = None,
        text_partial_credit: float = TEXT_PARTIAL_CREDIT,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self._notifier = notifier
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="QuizReplication")
        self._text_partial_credit = text_partial_credit
        self._now = now
        self._pair_locks: dict[tuple[str, str], Lock] = {}
        self._pair_locks_guard = Lock()

    def build_result(self, request: SubmissionRequest) -> SessionResult:
        summary = score(request.questions, request.answers, self._text_partial_credit)
        email = request.student.email.strip() or None
        return SessionResult(
            quiz_id=request.quiz.id,
            student_id=request.student.student_id,
            student_name=request.student.name,
            student_email=email,
            score=summary.score,
            total_points=summary.total_points,
            percentage=compute_percentage(summary.score, summary.total_points),
            answers=summary.graded_answers,
            correct_answers=correct_answer_key(request.questions),
            submitted_at=self._now(),
            security_violations=request.security_violations,
            completed=request.completed,
            quiz_title=request.quiz.title,
        )

    def submit(self, request: SubmissionRequest) -> SubmissionOutcome:
        """Score, persist locally, and schedule remote replication.

        Raises ``StorageError`` only when the local write fails; remote
        problems never reach the caller.
        """
        result = self.build_result(request)
        self._cache.upsert_result(result)
        logger.info(
            "Stored result for student %s on quiz %s: %s/%s",
            result.student_id,
            result.quiz_id,
            result.score,
            result.total_points,
        )
        try:
            replication = self._executor.submit(self._replicate, result)
        except RuntimeError:
            logger.warning("Replication executor is shut down; result for %s stays local", result.student_id)
            replication = None
        return SubmissionOutcome(result=result, replication=replication)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def _replicate(self, result: SessionResult) -> bool:
        with self._pair_lock(result.quiz_id, result.student_id):
            try:
                self._upsert_remote(result)
            except Exception:
                logger.warning(
                    "Remote replication failed for student %s on quiz %s",
                    result.student_id,
                    result.quiz_id,
                    exc_info=True,
                )
                return False
        logger.info("Replicated result for student %s on quiz %s", result.student_id, result.quiz_id)
        if result.student_email and self._notifier is not None:
            self._notify(result)
        return True

    def _upsert_remote(self, result: SessionResult) -> None:
        attempt_row = _attempt_row(result)
        existing = self._remote.find_attempt(result.quiz_id, result.student_id)
        if existing is not None:
            attempt_id = str(existing["id"])
            self._remote.update_attempt(attempt_id, attempt_row)
        else:
            attempt_id = self._remote.insert_attempt(attempt_row)
        self._remote.replace_answers(attempt_id, _answer_rows(result))

    def _notify(self, result: SessionResult) -> None:
        notice = SubmissionNotice(
            quiz_id=result.quiz_id,
            quiz_title=result.quiz_title or "Quiz",
            student_name=result.student_name,
            student_id=result.student_id,
            student_email=result.student_email or "",
        )
        try:
            self._notifier.send_confirmation(notice)
        except Exception:
            logger.warning("Confirmation for %s failed", notice.student_email, exc_info=True)

    def _pair_lock(self, quiz_id: str, student_id: str) -> Lock:
        with self._pair_locks_guard:
            return self._pair_locks.setdefault((quiz_id, student_id), Lock())


def _attempt_row(result: SessionResult) -> dict[str, Any]:
    return {
        "quiz_id": result.quiz_id,
        "student_name": result.student_name,
        "student_id": result.student_id,
        "student_email": result.student_email,
        "score": result.score,
        "total_points": result.total_points,
        "submitted_at": format_timestamp(result.submitted_at),
        "security_violations": result.security_violations,
        "completed": result.completed,
    }


def _answer_rows(result: SessionResult) -> list[dict[str, Any]]:
    return [
        {
            "question_id": answer.question_id,
            "selected_option_id": answer.selected_option_id,
            "text_answer": answer.text_answer,
            "is_correct": answer.is_correct,
            "points_awarded": answer.points_awarded,
        }
        for answer in result.answers
        if answer.is_answered
    ]

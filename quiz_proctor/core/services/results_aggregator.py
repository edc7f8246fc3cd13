"""Service that merges remote and locally cached results for reporting."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
import logging

from quiz_proctor.constants.session_constants import DEFAULT_RESULTS_TITLE
from quiz_proctor.core.errors import StorageError, TransientRemoteError
from quiz_proctor.core.models import SessionResult
from quiz_proctor.core.sanitizer import result_from_attempt_row
from quiz_proctor.core.services.local_cache import LocalCache
from quiz_proctor.core.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)


class ResultOrder(str, Enum):
    REPORT = "report"
    RECENT = "recent"


@dataclass(slots=True)
class ResultsReport:
    quiz_id: str
    quiz_title: str
    results: list[SessionResult]
    degraded: bool


class ResultsAggregator:
    def __init__(self, remote: RemoteStore, cache: LocalCache) -> None:
        self._remote = remote
        self._cache = cache

    def load_results(self, quiz_id: str, order: ResultOrder = ResultOrder.REPORT) -> list[SessionResult]:
        return self.load_report(quiz_id, order).results

    def load_report(self, quiz_id: str, order: ResultOrder = ResultOrder.REPORT) -> ResultsReport:
        """Merge both sources, deduplicating on (student, quiz, submitted_at).

        The remote copy wins when a submission is visible from both sources;
        remote rows carry no answers, so those are taken from the local copy.
        Raises ``TransientRemoteError`` only when the remote store is
        unreachable and nothing is cached locally.
        """
        remote_title: str | None = None
        remote_results: list[SessionResult] | None
        try:
            remote_results = self._load_remote(quiz_id)
            remote_title = self._load_remote_title(quiz_id)
        except TransientRemoteError as exc:
            logger.warning("Remote results for quiz %s unavailable: %s", quiz_id, exc)
            remote_results = None

        try:
            local_results = self._cache.load_results(quiz_id)
        except StorageError:
            logger.error("Cached results for quiz %s are unreadable", quiz_id)
            local_results = []

        if remote_results is None and not local_results:
            raise TransientRemoteError(f"No results available for quiz {quiz_id} from any source.")

        merged: dict[tuple[str, str, datetime], SessionResult] = {}
        for result in local_results:
            merged[result.identity] = result
        for result in remote_results or []:
            local_copy = merged.get(result.identity)
            if local_copy is not None and not result.answers:
                result = replace(result, answers=local_copy.answers, correct_answers=local_copy.correct_answers)
            merged[result.identity] = result

        results = sort_results(list(merged.values()), order)
        title = remote_title or next((r.quiz_title for r in local_results if r.quiz_title), None)
        return ResultsReport(
            quiz_id=quiz_id,
            quiz_title=title or DEFAULT_RESULTS_TITLE,
            results=results,
            degraded=remote_results is None,
        )

    def _load_remote(self, quiz_id: str) -> list[SessionResult]:
        results = []
        for row in self._remote.list_attempts(quiz_id):
            result = result_from_attempt_row(row)
            if result is not None:
                results.append(result)
        return results

    def _load_remote_title(self, quiz_id: str) -> str | None:
        try:
            row = self._remote.fetch_quiz(quiz_id)
        except TransientRemoteError:
            return None
        return (row or {}).get("title") or None


def sort_results(results: list[SessionResult], order: ResultOrder) -> list[SessionResult]:
    if order is ResultOrder.RECENT:
        return sorted(results, key=lambda result: result.submitted_at, reverse=True)
    return sorted(results, key=lambda result: (result.student_id, result.submitted_at))

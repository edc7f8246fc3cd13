"""Shared fakes and fixtures for the exam engine tests."""

from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Any, Callable
from uuid import uuid4

import pytest

from quiz_proctor.core.errors import TransientRemoteError
from quiz_proctor.core.key_value_store import InMemoryKeyValueStore
from quiz_proctor.core.services.exam_session import ExamSession
from quiz_proctor.core.services.local_cache import LocalCache
from quiz_proctor.core.services.notifier import SubmissionNotice
from quiz_proctor.core.services.proctoring_monitor import BrowserFocusSource
from quiz_proctor.core.services.quiz_resolver import QuizResolver
from quiz_proctor.core.services.results_aggregator import ResultsAggregator
from quiz_proctor.core.services.submission_engine import SubmissionEngine


class _ManualCall:
    def __init__(self, due: float, interval: float | None, callback: Callable[[], None]) -> None:
        self.due = due
        self.interval = interval
        self.callback = callback
        self.cancelled = False

    @property
    def active(self) -> bool:
        return not self.cancelled

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler; time only moves when ``advance`` is called."""

    def __init__(self) -> None:
        self._now = 0.0
        self._calls: list[_ManualCall] = []

    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for call in self._calls if call.active)

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> _ManualCall:
        call = _ManualCall(self._now + delay_seconds, None, callback)
        self._calls.append(call)
        return call

    def call_every(self, interval_seconds: float, callback: Callable[[], None]) -> _ManualCall:
        call = _ManualCall(self._now + interval_seconds, interval_seconds, callback)
        self._calls.append(call)
        return call

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [call for call in self._calls if call.active and call.due <= target + 1e-9]
            if not due:
                break
            call = min(due, key=lambda item: item.due)
            self._now = max(self._now, call.due)
            if call.interval is None:
                call.cancelled = True
            else:
                call.due += call.interval
            call.callback()
        self._now = target
        self._calls = [call for call in self._calls if call.active]


class SynchronousExecutor(Executor):
    """Runs submitted work inline so replication is observable right away."""

    def __init__(self) -> None:
        self.submitted = 0
        self._shutdown = False

    def submit(self, fn, /, *args, **kwargs) -> Future:
        if self._shutdown:
            raise RuntimeError("cannot schedule new futures after shutdown")
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self._shutdown = True


class FakeRemoteStore:
    """In-memory stand-in for the PostgREST tables."""

    def __init__(self) -> None:
        self.online = True
        self.quizzes: dict[str, dict[str, Any]] = {}
        self.question_rows: list[dict[str, Any]] = []
        self.option_rows: list[dict[str, Any]] = []
        self.attempts: dict[str, dict[str, Any]] = {}
        self.answers: dict[str, list[dict[str, Any]]] = {}
        self.notifications: dict[str, dict[str, Any]] = {}
        self.invocations: list[tuple[str, dict[str, Any]]] = []
        self.function_response: dict[str, Any] = {"success": True}
        self.inserts = 0

    def _check(self) -> None:
        if not self.online:
            raise TransientRemoteError("remote store is offline")

    def add_quiz(self, quiz_id: str, title: str, time_limit: float, questions: list[dict[str, Any]]) -> None:
        self.quizzes[quiz_id] = {
            "id": quiz_id,
            "title": title,
            "description": "",
            "time_limit": time_limit,
            "created_at": "2024-01-01T00:00:00Z",
        }
        for position, question in enumerate(questions):
            self.question_rows.append(
                {
                    "id": question["id"],
                    "quiz_id": quiz_id,
                    "text": question["text"],
                    "type": question["type"],
                    "points": question.get("points", 10),
                    "required": question.get("required", False),
                    "order_number": position,
                }
            )
            for option_position, option in enumerate(question.get("options", [])):
                self.option_rows.append(
                    {
                        "id": option["id"],
                        "question_id": question["id"],
                        "text": option["text"],
                        "is_correct": option.get("isCorrect", False),
                        "order_number": option_position,
                    }
                )

    def fetch_quiz(self, quiz_id: str) -> dict[str, Any] | None:
        self._check()
        return self.quizzes.get(quiz_id)

    def fetch_questions(self, quiz_id: str) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        self._check()
        questions = [row for row in self.question_rows if row["quiz_id"] == quiz_id]
        ids = {row["id"] for row in questions}
        return questions, [row for row in self.option_rows if row["question_id"] in ids]

    def find_attempt(self, quiz_id: str, student_id: str) -> dict[str, Any] | None:
        self._check()
        for row in self.attempts.values():
            if row["quiz_id"] == quiz_id and row["student_id"] == student_id:
                return {"id": row["id"]}
        return None

    def insert_attempt(self, row: dict[str, Any]) -> str:
        self._check()
        attempt_id = str(uuid4())
        self.attempts[attempt_id] = {"id": attempt_id, **row}
        self.inserts += 1
        return attempt_id

    def update_attempt(self, attempt_id: str, row: dict[str, Any]) -> None:
        self._check()
        self.attempts[attempt_id].update(row)

    def replace_answers(self, attempt_id: str, rows: list[dict[str, Any]]) -> None:
        self._check()
        self.answers[attempt_id] = [dict(row) for row in rows]

    def list_attempts(self, quiz_id: str) -> list[dict[str, Any]]:
        self._check()
        rows = [dict(row) for row in self.attempts.values() if row["quiz_id"] == quiz_id]
        return sorted(rows, key=lambda row: row["student_id"])

    def record_notification(self, row: dict[str, Any]) -> str:
        self._check()
        notification_id = str(uuid4())
        self.notifications[notification_id] = {"id": notification_id, "email_sent": False, **row}
        return notification_id

    def mark_notification_sent(self, notification_id: str, sent_at: str) -> None:
        self._check()
        self.notifications[notification_id].update({"email_sent": True, "email_sent_at": sent_at})

    def invoke_function(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        self._check()
        self.invocations.append((name, body))
        return dict(self.function_response)


class RecordingNotifier:
    def __init__(self) -> None:
        self.notices: list[SubmissionNotice] = []

    def send_confirmation(self, notice: SubmissionNotice) -> bool:
        self.notices.append(notice)
        return True


SINGLE_CHOICE_QUESTION = {
    "id": "q1",
    "text": "What is $2 + 2$?",
    "type": "single-choice",
    "points": 10,
    "required": True,
    "options": [
        {"id": "A", "text": "4", "isCorrect": True},
        {"id": "B", "text": "5", "isCorrect": False},
    ],
}


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def cache(kv_store) -> LocalCache:
    return LocalCache(kv_store)


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def executor() -> SynchronousExecutor:
    return SynchronousExecutor()


@pytest.fixture
def engine(cache, remote, notifier, executor) -> SubmissionEngine:
    return SubmissionEngine(cache, remote, notifier, executor=executor)


@pytest.fixture
def resolver(remote, cache) -> QuizResolver:
    return QuizResolver(remote, cache)


@pytest.fixture
def aggregator(remote, cache) -> ResultsAggregator:
    return ResultsAggregator(remote, cache)


@pytest.fixture
def quiz_q1(remote) -> str:
    """Quiz ``Q1``: one minute, one required single-choice question worth 10."""
    remote.add_quiz("Q1", "Arithmetic", time_limit=1, questions=[SINGLE_CHOICE_QUESTION])
    return "Q1"


@pytest.fixture
def focus_source() -> BrowserFocusSource:
    return BrowserFocusSource()


@pytest.fixture
def make_session(resolver, engine, scheduler, focus_source):
    def factory(quiz_id: str, **options: Any) -> ExamSession:
        return ExamSession(
            quiz_id,
            resolver,
            engine,
            scheduler,
            focus_source,
            monitor_clock=scheduler.now,
            **options,
        )

    return factory

"""Facade wiring the session services together, shared by the API layer."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable
from uuid import uuid4

from quiz_proctor.config import Settings
from quiz_proctor.core.key_value_store import JsonFileKeyValueStore
from quiz_proctor.core.services.exam_session import ExamSession, SessionSnapshot, SessionStage
from quiz_proctor.core.services.local_cache import LocalCache
from quiz_proctor.core.services.notifier import RemoteFunctionNotifier
from quiz_proctor.core.services.proctoring_monitor import BrowserFocusSource, FocusSignal
from quiz_proctor.core.services.quiz_resolver import QuizResolver
from quiz_proctor.core.services.remote_store import PostgrestRemoteStore
from quiz_proctor.core.services.results_aggregator import ResultOrder, ResultsAggregator, ResultsReport
from quiz_proctor.core.services.scheduler import Scheduler, ThreadingScheduler
from quiz_proctor.core.services.submission_engine import SubmissionEngine

logger = logging.getLogger(__name__)


class ExamManager:
    """Facade for the exam services: Resolver, Sessions, Submission and Results."""

    def __init__(
        self,
        resolver: QuizResolver,
        engine: SubmissionEngine,
        aggregator: ResultsAggregator,
        scheduler: Scheduler,
        session_options: dict[str, object] | None = None,
        monitor_clock: Callable[[], float] | None = None,
    ) -> None:
        self._lock = Lock()
        self._resolver = resolver
        self._engine = engine
        self._aggregator = aggregator
        self._scheduler = scheduler
        self._session_options = dict(session_options or {})
        self._monitor_clock = monitor_clock
        self._sessions: dict[str, ExamSession] = {}
        self._focus_sources: dict[str, BrowserFocusSource] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExamManager":
        cache = LocalCache(JsonFileKeyValueStore(settings.cache_path))
        remote = PostgrestRemoteStore(
            settings.remote_url,
            api_key=settings.remote_api_key,
            timeout=settings.remote_timeout_seconds,
        )
        if not remote.configured:
            logger.warning("No remote store configured; sessions will run from the local cache only")
        notifier = RemoteFunctionNotifier(remote, function_name=settings.notification_function)
        engine = SubmissionEngine(cache, remote, notifier, text_partial_credit=settings.text_partial_credit)
        return cls(
            resolver=QuizResolver(remote, cache),
            engine=engine,
            aggregator=ResultsAggregator(remote, cache),
            scheduler=ThreadingScheduler(),
            session_options={
                "violation_limit": settings.violation_limit,
                "focus_grace_seconds": settings.focus_grace_seconds,
                "fullscreen_grace_seconds": settings.fullscreen_grace_seconds,
            },
        )

    # --- Session lifecycle ---

    def create_session(self, quiz_id: str) -> tuple[str, SessionSnapshot]:
        source = BrowserFocusSource()
        session = ExamSession(
            quiz_id,
            self._resolver,
            self._engine,
            self._scheduler,
            source,
            monitor_clock=self._monitor_clock,
            **self._session_options,
        )
        session_id = uuid4().hex
        with self._lock:
            self._sessions[session_id] = session
            self._focus_sources[session_id] = source
        return session_id, session.open()

    def get_session(self, session_id: str) -> ExamSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        return session

    def snapshot(self, session_id: str) -> SessionSnapshot:
        return self.get_session(session_id).snapshot()

    def retry(self, session_id: str) -> SessionSnapshot:
        return self.get_session(session_id).retry()

    def register(self, session_id: str, name: str, student_id: str, email: str) -> SessionSnapshot:
        return self.get_session(session_id).register(name, student_id, email)

    def start(self, session_id: str) -> SessionSnapshot:
        return self.get_session(session_id).start()

    def answer(self, session_id: str, question_id: str, value: str | None) -> SessionSnapshot:
        return self.get_session(session_id).answer_change(question_id, value)

    def next_question(self, session_id: str) -> SessionSnapshot:
        return self.get_session(session_id).next_question()

    def previous_question(self, session_id: str) -> SessionSnapshot:
        return self.get_session(session_id).previous_question()

    def submit(self, session_id: str) -> SessionSnapshot:
        return self.get_session(session_id).submit()

    def quit(self, session_id: str) -> SessionSnapshot:
        """Abandon the session and forget it; nothing was persisted."""
        snapshot = self.get_session(session_id).quit()
        self._forget(session_id)
        return snapshot

    def push_focus_signal(self, session_id: str, signal: FocusSignal) -> SessionSnapshot:
        session = self.get_session(session_id)
        with self._lock:
            source = self._focus_sources[session_id]
        source.push(signal)
        return session.snapshot()

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def discard_session(self, session_id: str) -> None:
        """Forget a session once its client is done with it, quitting it if still live."""
        session = self._forget(session_id)
        if session is None:
            raise KeyError(session_id)
        _close(session)

    def _forget(self, session_id: str) -> ExamSession | None:
        with self._lock:
            self._focus_sources.pop(session_id, None)
            return self._sessions.pop(session_id, None)

    # --- Results ---

    def load_report(self, quiz_id: str, order: ResultOrder = ResultOrder.REPORT) -> ResultsReport:
        return self._aggregator.load_report(quiz_id, order)

    def shutdown(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._focus_sources.clear()
        for session in sessions:
            _close(session)
        self._engine.shutdown(wait=True)


def _close(session: ExamSession) -> None:
    if session.stage in (SessionStage.REGISTERING, SessionStage.IN_PROGRESS):
        session.quit()

"""Service that runs one student's timed, proctored quiz session."""

from __future__ import annotations

from collections import deque
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
import logging
import re
from threading import Lock, RLock
from typing import Callable

from quiz_proctor.constants.session_constants import (
    FOCUS_GRACE_SECONDS,
    FULLSCREEN_GRACE_SECONDS,
    VIOLATION_LIMIT,
)
from quiz_proctor.core.errors import (
    NotFoundError,
    SecurityTermination,
    StorageError,
    ValidationError,
)
from quiz_proctor.core.models import (
    AnswerRecord,
    Question,
    ResolvedQuiz,
    SessionResult,
    StudentIdentity,
)
from quiz_proctor.core.services.proctoring_monitor import FocusSource, ProctoringMonitor
from quiz_proctor.core.services.quiz_resolver import QuizResolver
from quiz_proctor.core.services.scheduler import Scheduler
from quiz_proctor.core.services.session_clock import SessionClock
from quiz_proctor.core.services.submission_engine import (
    SubmissionEngine,
    SubmissionOutcome,
    SubmissionRequest,
)

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SessionStage(str, Enum):
    IDLE = "idle"
    REGISTERING = "registering"
    IN_PROGRESS = "in-progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    ERROR = "error"


class SubmitTrigger(str, Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"
    VIOLATIONS = "violations"


@dataclass(frozen=True, slots=True)
class SessionEvent:
    """Notification for the UI layer (warnings, forced submission, completion)."""

    kind: str
    message: str
    count: int | None = None


@dataclass(slots=True)
class SessionSnapshot:
    stage: SessionStage
    quiz_id: str
    quiz_title: str | None
    time_left: int
    current_question_index: int
    current_question: Question | None
    question_count: int
    answers: dict[str, str | None]
    unanswered_count: int
    progress_percent: int
    violation_count: int
    degraded: bool
    confirmation_pending: bool
    error: str | None = None
    error_code: str | None = None
    termination_reason: str | None = None
    result: SessionResult | None = None
    events: list[SessionEvent] = field(default_factory=list)


class OneShotLatch:
    """Lets exactly one caller through, however many race for it."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._fired = False

    @property
    def fired(self) -> bool:
        with self._lock:
            return self._fired

    def try_acquire(self) -> bool:
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True


class ExamSession:
    """State machine for one session: Idle → Registering → InProgress → Submitting → Submitted.

    ``Error`` is reachable while registering (resolution failure) and while
    submitting (local persistence failure); ``retry`` re-enters Registering.
    Manual submission, clock expiry and the violation limit all funnel into
    one latch-guarded submission.
    """

    def __init__(
        self,
        quiz_id: str,
        resolver: QuizResolver,
        engine: SubmissionEngine,
        scheduler: Scheduler,
        focus_source: FocusSource,
        violation_limit: int = VIOLATION_LIMIT,
        focus_grace_seconds: float = FOCUS_GRACE_SECONDS,
        fullscreen_grace_seconds: float = FULLSCREEN_GRACE_SECONDS,
        monitor_clock: Callable[[], float] | None = None,
    ) -> None:
        self.quiz_id = quiz_id
        self._resolver = resolver
        self._engine = engine
        self._scheduler = scheduler
        self._focus_source = focus_source
        self._violation_limit = violation_limit
        self._focus_grace_seconds = focus_grace_seconds
        self._fullscreen_grace_seconds = fullscreen_grace_seconds
        self._monitor_clock = monitor_clock

        self._lock = RLock()
        self._stage = SessionStage.IDLE
        self._content: ResolvedQuiz | None = None
        self._student = StudentIdentity()
        self._answers: dict[str, AnswerRecord] = {}
        self._current_index = 0
        self._confirmed = False
        self._violation_count = 0
        self._frozen_time_left: int | None = None
        self._error: Exception | None = None
        self._termination: SecurityTermination | None = None
        self._outcome: SubmissionOutcome | None = None
        self._events: deque[SessionEvent] = deque(maxlen=50)

        self._latch = OneShotLatch()
        self._clock: SessionClock | None = None
        self._monitor: ProctoringMonitor | None = None
        self._resources: ExitStack | None = None

    # --- Lifecycle ---

    @property
    def stage(self) -> SessionStage:
        with self._lock:
            return self._stage

    @property
    def result(self) -> SessionResult | None:
        with self._lock:
            return self._outcome.result if self._outcome else None

    @property
    def outcome(self) -> SubmissionOutcome | None:
        with self._lock:
            return self._outcome

    def open(self) -> SessionSnapshot:
        """Enter Registering and resolve the quiz content."""
        with self._lock:
            if self._stage not in (SessionStage.IDLE, SessionStage.ERROR):
                raise RuntimeError(f"Cannot open a session in stage {self._stage.value}.")
            self._stage = SessionStage.REGISTERING
            self._content = None
            self._error = None

        try:
            content = self._resolver.resolve(self.quiz_id)
        except NotFoundError as exc:
            with self._lock:
                self._stage = SessionStage.ERROR
                self._error = exc
            logger.warning("Session for quiz %s could not resolve content: %s", self.quiz_id, exc.code)
            return self.snapshot()

        with self._lock:
            self._content = content
            self._frozen_time_left = content.meta.duration_seconds
        return self.snapshot()

    def retry(self) -> SessionSnapshot:
        return self.open()

    def register(self, name: str, student_id: str, email: str) -> SessionSnapshot:
        with self._lock:
            self._require_stage(SessionStage.REGISTERING)
            self._require_content()
            self._student = StudentIdentity(
                name=(name or "").strip(),
                student_id=(student_id or "").strip(),
                email=(email or "").strip(),
            )
        return self.snapshot()

    def start(self) -> SessionSnapshot:
        """Validate the identity and move Registering → InProgress."""
        with self._lock:
            self._require_stage(SessionStage.REGISTERING)
            content = self._require_content()
            errors = validate_identity(self._student)
            if errors:
                raise ValidationError(errors)

            self._answers = {question.id: AnswerRecord(question_id=question.id) for question in content.questions}
            self._current_index = 0
            self._confirmed = False
            self._latch = OneShotLatch()
            self._violation_count = 0
            self._termination = None
            self._clock = SessionClock(
                self._scheduler,
                content.meta.duration_seconds,
                on_expire=self._handle_clock_expired,
            )
            monitor_kwargs = {"clock": self._monitor_clock} if self._monitor_clock is not None else {}
            self._monitor = ProctoringMonitor(
                self._focus_source,
                self._scheduler,
                on_warning=self._handle_violation_warning,
                on_limit_reached=self._handle_violation_limit,
                violation_limit=self._violation_limit,
                grace_seconds=self._focus_grace_seconds,
                fullscreen_grace_seconds=self._fullscreen_grace_seconds,
                **monitor_kwargs,
            )
            with ExitStack() as stack:
                stack.enter_context(self._monitor.watching())
                stack.callback(self._clock.stop)
                self._clock.start()
                self._resources = stack.pop_all()
            self._stage = SessionStage.IN_PROGRESS
            logger.info("Student %s started quiz %s", self._student.student_id, self.quiz_id)
        return self.snapshot()

    def quit(self) -> SessionSnapshot:
        """Abandon the session; nothing is scored or persisted."""
        with self._lock:
            if self._stage in (SessionStage.SUBMITTING, SessionStage.SUBMITTED):
                raise RuntimeError("A submitted session cannot be quit.")
            self._latch.try_acquire()
            self._release_resources()
            self._stage = SessionStage.IDLE
            logger.info("Session for quiz %s was quit", self.quiz_id)
        return self.snapshot()

    # --- In-progress interaction ---

    def answer_change(self, question_id: str, value: str | None) -> SessionSnapshot:
        """Replace the answer for ``question_id``; position is unchanged."""
        with self._lock:
            self._require_stage(SessionStage.IN_PROGRESS)
            question = self._question_by_id(question_id)
            cleaned = None if value is None else str(value)
            if not cleaned:
                self._answers[question_id] = AnswerRecord(question_id=question_id)
            elif question.type.is_choice:
                if not question.has_option(cleaned):
                    raise ValueError(f"Option {cleaned!r} does not belong to question {question_id!r}.")
                self._answers[question_id] = AnswerRecord(question_id=question_id, selected_option_id=cleaned)
            else:
                self._answers[question_id] = AnswerRecord(question_id=question_id, text_answer=cleaned)
        return self.snapshot()

    def next_question(self) -> SessionSnapshot:
        with self._lock:
            self._require_stage(SessionStage.IN_PROGRESS)
            if self._current_index < len(self._questions()) - 1:
                self._current_index += 1
        return self.snapshot()

    def previous_question(self) -> SessionSnapshot:
        with self._lock:
            self._require_stage(SessionStage.IN_PROGRESS)
            if self._current_index > 0:
                self._current_index -= 1
        return self.snapshot()

    def submit(self) -> SessionSnapshot:
        """Manual submission; the first call with unanswered required questions only warns."""
        with self._lock:
            if self._stage is not SessionStage.IN_PROGRESS:
                return self.snapshot()
            unanswered = self._unanswered_required()
            if unanswered and not self._confirmed:
                self._confirmed = True
                self._emit(
                    "unanswered-warning",
                    f"You have {len(unanswered)} unanswered required questions. Submit again to confirm.",
                    len(unanswered),
                )
                return self.snapshot()
            self._submit(SubmitTrigger.MANUAL)
        return self.snapshot()

    # --- Forced submission triggers ---

    def _handle_clock_expired(self) -> None:
        with self._lock:
            if self._stage is not SessionStage.IN_PROGRESS:
                return
            self._emit("time-expired", "Time is up. Your quiz has been submitted automatically.")
            self._submit(SubmitTrigger.TIMEOUT)

    def _handle_violation_warning(self, count: int) -> None:
        with self._lock:
            if self._stage is not SessionStage.IN_PROGRESS:
                return
            self._violation_count = count
            self._emit(
                "violation-warning",
                f"Leaving the quiz window was detected. Warning {count}/{self._violation_limit}.",
                count,
            )

    def _handle_violation_limit(self, count: int) -> None:
        with self._lock:
            if self._stage is not SessionStage.IN_PROGRESS:
                return
            self._violation_count = count
            self._termination = SecurityTermination(count)
            self._emit("security-termination", str(self._termination), count)
            self._submit(SubmitTrigger.VIOLATIONS)

    def _submit(self, trigger: SubmitTrigger) -> None:
        if not self._latch.try_acquire():
            return
        content = self._require_content()
        self._stage = SessionStage.SUBMITTING
        self._frozen_time_left = self._clock.remaining_seconds if self._clock else 0
        self._release_resources()

        request = SubmissionRequest(
            quiz=content.meta,
            questions=content.questions,
            answers=dict(self._answers),
            student=self._student,
            security_violations=self._violation_count,
            completed=trigger is not SubmitTrigger.VIOLATIONS,
        )
        logger.info("Submitting quiz %s for %s (%s)", self.quiz_id, self._student.student_id, trigger.value)
        try:
            self._outcome = self._engine.submit(request)
        except StorageError as exc:
            logger.error("Result for %s could not be stored locally: %s", self._student.student_id, exc)
            self._error = exc
            self._stage = SessionStage.ERROR
            return
        self._stage = SessionStage.SUBMITTED
        self._emit("submitted", "Your answers have been recorded.")

    # --- Snapshot ---

    def snapshot(self) -> SessionSnapshot:
        """Current state plus the events raised since the previous snapshot."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
            questions = self._questions()
            current = questions[self._current_index] if questions else None
            answered = sum(1 for answer in self._answers.values() if answer.is_answered)
            error_code = getattr(self._error, "code", None)
            return SessionSnapshot(
                stage=self._stage,
                quiz_id=self.quiz_id,
                quiz_title=self._content.meta.title if self._content else None,
                time_left=self._time_left(),
                current_question_index=self._current_index,
                current_question=current,
                question_count=len(questions),
                answers={question_id: answer.value for question_id, answer in self._answers.items()},
                unanswered_count=max(0, len(questions) - answered),
                progress_percent=round(answered / len(questions) * 100) if questions else 0,
                violation_count=self._violation_count,
                degraded=bool(self._content and self._content.degraded),
                confirmation_pending=self._confirmed,
                error=str(self._error) if self._error else None,
                error_code=error_code,
                termination_reason=str(self._termination) if self._termination else None,
                result=self._outcome.result if self._outcome else None,
                events=events,
            )

    # --- Helpers ---

    def _release_resources(self) -> None:
        resources, self._resources = self._resources, None
        if resources is not None:
            resources.close()

    def _time_left(self) -> int:
        if self._stage is SessionStage.IN_PROGRESS and self._clock is not None:
            return self._clock.remaining_seconds
        return self._frozen_time_left or 0

    def _questions(self) -> list[Question]:
        return self._content.questions if self._content else []

    def _question_by_id(self, question_id: str) -> Question:
        for question in self._questions():
            if question.id == question_id:
                return question
        raise ValueError(f"Unknown question {question_id!r}.")

    def _unanswered_required(self) -> list[Question]:
        return [
            question
            for question in self._questions()
            if question.required and not self._answers.get(question.id, AnswerRecord(question.id)).is_answered
        ]

    def _require_content(self) -> ResolvedQuiz:
        self._require_stage(SessionStage.REGISTERING, SessionStage.IN_PROGRESS, SessionStage.SUBMITTING)
        if self._content is None:
            raise RuntimeError("Quiz content has not been resolved yet.")
        return self._content

    def _require_stage(self, *stages: SessionStage) -> None:
        if self._stage not in stages:
            raise RuntimeError(f"Action not allowed in stage {self._stage.value}.")

    def _emit(self, kind: str, message: str, count: int | None = None) -> None:
        self._events.append(SessionEvent(kind=kind, message=message, count=count))


def validate_identity(student: StudentIdentity) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not student.name:
        errors["student_name"] = "Name is required."
    if not student.student_id:
        errors["student_id"] = "Student id is required."
    if not student.email:
        errors["student_email"] = "Email is required."
    elif not _EMAIL_PATTERN.match(student.email):
        errors["student_email"] = "Email address is not valid."
    return errors

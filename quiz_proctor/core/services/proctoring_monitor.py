"""Service that turns focus/visibility signals into proctoring violations."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
import logging
from threading import Lock
import time
from typing import Callable, Iterator, Protocol

from quiz_proctor.constants.session_constants import (
    FOCUS_GRACE_SECONDS,
    FULLSCREEN_GRACE_SECONDS,
    VIOLATION_LIMIT,
)
from quiz_proctor.core.services.scheduler import ScheduledCall, Scheduler

logger = logging.getLogger(__name__)


class FocusSignal(str, Enum):
    HIDDEN = "hidden"
    VISIBLE = "visible"
    BLUR = "blur"
    FOCUS = "focus"
    FULLSCREEN = "fullscreen"

    @property
    def is_away(self) -> bool:
        return self in (FocusSignal.HIDDEN, FocusSignal.BLUR)

    @property
    def is_back(self) -> bool:
        return self in (FocusSignal.VISIBLE, FocusSignal.FOCUS)


FocusCallback = Callable[[FocusSignal], None]


class FocusSource(Protocol):
    """Subscription capability; ``subscribe`` returns the matching unsubscribe."""

    def subscribe(self, callback: FocusCallback) -> Callable[[], None]: ...


class BrowserFocusSource:
    """Focus source fed by signals the student's browser reports over HTTP."""

    def __init__(self) -> None:
        self._subscribers: list[FocusCallback] = []
        self._lock = Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, callback: FocusCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def push(self, signal: FocusSignal) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(signal)


class ProctoringMonitor:
    """Counts genuine "left the exam" transitions while installed.

    A hidden/blur signal opens a pending violation that is confirmed after
    ``grace_seconds``. Returning within the grace window, or any fullscreen
    change close to the transition, cancels it. Hidden and blur firing for the
    same tab switch count once: a second away signal is ignored until the
    student is back.
    """

    def __init__(
        self,
        source: FocusSource,
        scheduler: Scheduler,
        on_warning: Callable[[int], None],
        on_limit_reached: Callable[[int], None],
        violation_limit: int = VIOLATION_LIMIT,
        grace_seconds: float = FOCUS_GRACE_SECONDS,
        fullscreen_grace_seconds: float = FULLSCREEN_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._scheduler = scheduler
        self._on_warning = on_warning
        self._on_limit_reached = on_limit_reached
        self._violation_limit = violation_limit
        self._grace_seconds = grace_seconds
        self._fullscreen_grace_seconds = fullscreen_grace_seconds
        self._clock = clock

        self._lock = Lock()
        self._unsubscribe: Callable[[], None] | None = None
        self._pending: ScheduledCall | None = None
        self._away = False
        self._suppress_until = float("-inf")
        self._violation_count = 0

    @property
    def violation_count(self) -> int:
        with self._lock:
            return self._violation_count

    @property
    def installed(self) -> bool:
        with self._lock:
            return self._unsubscribe is not None

    def install(self) -> None:
        with self._lock:
            if self._unsubscribe is not None:
                return
            self._away = False
            self._unsubscribe = self._source.subscribe(self._handle_signal)
        logger.debug("Proctoring monitor installed")

    def uninstall(self) -> None:
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()
        if unsubscribe is not None:
            unsubscribe()
            logger.debug("Proctoring monitor removed")

    @contextmanager
    def watching(self) -> Iterator["ProctoringMonitor"]:
        self.install()
        try:
            yield self
        finally:
            self.uninstall()

    def _handle_signal(self, signal: FocusSignal) -> None:
        now = self._clock()
        cancelled: ScheduledCall | None = None
        with self._lock:
            if self._unsubscribe is None:
                return
            if signal is FocusSignal.FULLSCREEN:
                self._suppress_until = now + self._fullscreen_grace_seconds
                cancelled, self._pending = self._pending, None
            elif signal.is_back:
                self._away = False
                cancelled, self._pending = self._pending, None
            elif signal.is_away and not self._away:
                self._away = True
                if now < self._suppress_until:
                    logger.debug("Ignoring %s during fullscreen transition", signal.value)
                else:
                    self._pending = self._scheduler.call_later(self._grace_seconds, self._confirm_violation)
        if cancelled is not None:
            cancelled.cancel()

    def _confirm_violation(self) -> None:
        with self._lock:
            if self._unsubscribe is None or self._pending is None:
                return
            self._pending = None
            self._violation_count += 1
            count = self._violation_count
        logger.warning("Proctoring violation %d/%d", count, self._violation_limit)
        self._on_warning(count)
        if count >= self._violation_limit:
            self._on_limit_reached(count)

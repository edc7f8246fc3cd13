"""Timer scheduling shared by the session clock and the proctoring monitor."""

from __future__ import annotations

import logging
from threading import Lock, Timer
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class Scheduler(Protocol):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall: ...

    def call_every(self, interval_seconds: float, callback: Callable[[], None]) -> ScheduledCall: ...


class _ThreadingCall:
    """One-shot or repeating call backed by ``threading.Timer``."""

    def __init__(self, interval: float, callback: Callable[[], None], repeat: bool) -> None:
        self._interval = interval
        self._callback = callback
        self._repeat = repeat
        self._lock = Lock()
        self._cancelled = False
        self._timer: Timer | None = None
        self._arm()

    @property
    def active(self) -> bool:
        with self._lock:
            return not self._cancelled

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _arm(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            timer = Timer(self._interval, self._fire)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            if not self._repeat:
                self._cancelled = True
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback %r raised", self._callback)
        if self._repeat:
            self._arm()


class ThreadingScheduler:
    """Production scheduler; callbacks run on short-lived daemon threads."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        return _ThreadingCall(delay_seconds, callback, repeat=False)

    def call_every(self, interval_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        return _ThreadingCall(interval_seconds, callback, repeat=True)

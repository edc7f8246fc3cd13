"""Countdown timer that drives time-based forced submission."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

from quiz_proctor.constants.session_constants import TICK_INTERVAL_SECONDS
from quiz_proctor.core.services.scheduler import ScheduledCall, Scheduler

logger = logging.getLogger(__name__)


class SessionClock:
    """Single countdown ticking once per interval on a shared scheduler.

    ``on_expire`` fires at most once, on the tick that reaches zero; the clock
    stops itself at that point. ``stop`` is idempotent and safe on every exit.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        duration_seconds: int,
        on_expire: Callable[[], None],
        on_tick: Callable[[int], None] | None = None,
        tick_interval: float = TICK_INTERVAL_SECONDS,
    ) -> None:
        self._scheduler = scheduler
        self._remaining = max(0, int(duration_seconds))
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._tick_interval = tick_interval
        self._handle: ScheduledCall | None = None
        self._expired = False
        self._lock = Lock()

    @property
    def remaining_seconds(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def running(self) -> bool:
        with self._lock:
            return self._handle is not None

    def start(self) -> None:
        with self._lock:
            if self._handle is not None or self._expired:
                return
            self._handle = self._scheduler.call_every(self._tick_interval, self._tick)

    def stop(self) -> None:
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()

    def _tick(self) -> None:
        with self._lock:
            if self._handle is None or self._expired:
                return
            self._remaining = max(0, self._remaining - 1)
            remaining = self._remaining
            expired = remaining == 0
            if expired:
                self._expired = True
        if self._on_tick is not None:
            self._on_tick(remaining)
        if expired:
            logger.info("Session clock expired")
            self.stop()
            self._on_expire()

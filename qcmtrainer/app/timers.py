from __future__ import annotations

"""Periodic tasks driving a session: the exam countdown and auto-save.

Both tasks hold a reference to the live ``QuizSession`` and go through its
locked methods, never through values captured when the task was created.
"""

import logging
import threading
from typing import Callable, Optional, Union

from storage.schema import FinalResult, ProgressSnapshot

from .session_manager import QuizSession

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Re-arming ``threading.Timer``; the callback runs outside the task lock."""

    def __init__(self, interval_s: float, callback: Callable[[], None], name: str = "task") -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.interval_s = float(interval_s)
        self.callback = callback
        self.name = name
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._arm()

    def _arm(self) -> None:
        if self._timer:
            self._timer.cancel()
        self._timer = threading.Timer(self.interval_s, self._fire)
        self._timer.daemon = True
        self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            if not self._running:
                return
        try:
            self.callback()
        except Exception:
            logger.exception("periodic task %s failed", self.name)
        with self._lock:
            if self._running:
                self._arm()

    def cancel(self) -> None:
        with self._lock:
            self._running = False
            if self._timer:
                self._timer.cancel()
                self._timer = None


class Countdown:
    """Countdown for timed sessions; expiry finalises the session.

    Every tick fired after ``tick_s`` wall-clock seconds removes ``step`` seconds
    from the session clock.
    """

    def __init__(
        self,
        session: QuizSession,
        *,
        tick_s: float = 1.0,
        step: int = 1,
        on_expire: Optional[Callable[[Optional[FinalResult]], None]] = None,
    ) -> None:
        self.session = session
        self.tick_s = tick_s
        self.step = step
        self.on_expire = on_expire
        self._paused = False
        self._task = PeriodicTask(tick_s, self.tick, name="countdown")

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def running(self) -> bool:
        return self._task.running

    def start(self) -> None:
        if self.session.time_left is None:
            return
        self._task.start()

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def stop(self) -> None:
        self._task.cancel()

    def tick(self) -> None:
        if self._paused:
            return
        if self.session.finished:
            self._task.cancel()
            return
        if self.session.tick(self.step):
            self._task.cancel()
            logger.info("time expired for session %s", self.session.spec.session_id)
            if self.on_expire:
                self.on_expire(self.session.result)


class AutoSaver:
    """Snapshots progress every ``interval_s`` without touching navigation."""

    def __init__(
        self,
        session: QuizSession,
        sink: Callable[[Union[ProgressSnapshot, FinalResult]], None],
        *,
        interval_s: float = 30.0,
    ) -> None:
        self.session = session
        self.sink = sink
        self._task = PeriodicTask(interval_s, self.save_now, name="autosave")

    @property
    def running(self) -> bool:
        return self._task.running

    def start(self) -> None:
        self._task.start()

    def stop(self) -> None:
        self._task.cancel()

    def save_now(self) -> bool:
        if self.session.finished:
            return False
        self.sink(self.session.snapshot())
        return True

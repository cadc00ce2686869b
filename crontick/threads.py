"""
Scheduler-owned threads: the per-scheduler timer and the per-tick launchers.

The timer sleeps until each whole minute and asks the scheduler for a
launcher; the launcher matches every known pattern against the tick and
asks the scheduler to spawn an executor for each match.
"""

import threading
import time
import uuid
from typing import Callable, Sequence

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)

# Upper bound for one join() call while waiting for a thread to die
JOIN_POLL_SECONDS = 1.0


def join_until_dead(thread: threading.Thread) -> None:
    """Wait for ``thread`` to exit, re-joining until it really has."""
    while thread.is_alive():
        thread.join(JOIN_POLL_SECONDS)


def next_minute_boundary(timestamp: float) -> float:
    """The first whole minute strictly after ``timestamp``."""
    return (int(timestamp // 60) + 1) * 60.0


class TimerThread(threading.Thread):
    """
    The scheduler heartbeat.

    Spends its life sleeping; at every minute boundary it requests a
    launcher from the scheduler. It ends only when cancelled.
    """

    def __init__(
        self,
        scheduler,
        daemon: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.guid = str(uuid.uuid4())
        super().__init__(name=f"crontick-timer-{self.guid[:8]}", daemon=daemon)
        self._scheduler = scheduler
        self._clock = clock
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _sleep_until(self, deadline: float) -> bool:
        """
        Sleep until ``deadline`` (never less).

        Returns:
            False if the thread was cancelled while sleeping
        """
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return not self._cancelled.is_set()
            if self._cancelled.wait(remaining):
                return False

    def run(self) -> None:
        logger.debug("Timer thread started")
        next_tick = next_minute_boundary(self._clock())
        while self._sleep_until(next_tick):
            now = self._clock()
            logger.trace("Tick at %.3f", now)
            try:
                self._scheduler._spawn_launcher(now)
            except Exception as e:
                # Keep ticking even if one launch could not be spawned
                logger.error("Failed to spawn launcher for tick %.0f: %s", now, e)
            next_tick = next_minute_boundary(now)
        self._scheduler = None
        logger.debug("Timer thread cancelled")


class LauncherThread(threading.Thread):
    """
    Launches, for one tick, every task whose pattern matches the tick.

    Sources are queried in registration order and executors are spawned
    in the order of the pairs they return.
    """

    def __init__(
        self,
        scheduler,
        sources: Sequence,
        reference_time: float,
        daemon: bool = False,
    ):
        self.guid = str(uuid.uuid4())
        super().__init__(name=f"crontick-launcher-{self.guid[:8]}", daemon=daemon)
        self._scheduler = scheduler
        self._sources = list(sources)
        self.reference_time = reference_time
        self._cancelled = threading.Event()
        self.launched = 0

    def cancel(self) -> None:
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self) -> None:
        try:
            self._launch_matching()
        finally:
            self._scheduler._notify_launcher_completed(self)

    def _launch_matching(self) -> None:
        timezone_offset = self._scheduler.get_timezone()
        for source in self._sources:
            if self._cancelled.is_set():
                break
            try:
                table = source.get_tasks()
            except Exception:
                logger.error("Task source %r failed, skipping it", source, exc_info=True)
                continue

            for pattern, task in table:
                if self._cancelled.is_set():
                    break
                if pattern.match(self.reference_time, timezone_offset):
                    logger.debug("Pattern '%s' matched, launching %r", pattern, task)
                    self._scheduler._spawn_executor(task)
                    self.launched += 1

        logger.trace(
            "Launcher %s done: %d task(s) launched", self.guid, self.launched
        )

"""
The scheduler: registry of task sources and listeners, and owner of the
timer, launcher and executor threads.

    scheduler = Scheduler()
    task_id = scheduler.schedule("*/5 * * * *", lambda context: do_work())
    scheduler.start()
    ...
    scheduler.stop()
"""

import threading
import time
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

import psutil
from colored_logger import get_colored_logger

from .cron_parser import SchedulingPattern
from .errors import IllegalStateError, PredictionError
from .listeners import fire
from .predictor import Predictor
from .task import Task, as_task
from .task_executor import TaskExecutor
from .task_source import MemoryTaskSource, TaskSource
from .threads import LauncherThread, TimerThread, join_until_dead

logger = get_colored_logger(__name__)


class Scheduler:
    """
    Cron-style scheduler running tasks in their own threads.

    Features:
    - Tasks scheduled in memory or supplied by external task sources
    - One launcher thread per minute tick, one worker thread per execution
    - Cooperative pause/stop of running executions
    - Listener notification of launches, successes and failures
    - Fixed timezone offset for pattern matching

    Locking: each collection (sources, listeners, live launchers, live
    executors) has its own lock. The started/timezone/daemon flags share
    the state lock, which is only held to read or write them. start() and
    stop() are serialized by the lifecycle lock.
    """

    def __init__(self):
        self.guid = str(uuid.uuid4())

        self._memory_source = MemoryTaskSource()
        self._sources: List[TaskSource] = [self._memory_source]
        self._sources_lock = threading.Lock()

        self._listeners: List = []
        self._listeners_lock = threading.Lock()

        # None while the scheduler is not running; nothing can be spawned then
        self._launchers: Optional[Dict[str, LauncherThread]] = None
        self._launchers_lock = threading.Lock()
        self._executors: Optional[Dict[str, TaskExecutor]] = None
        self._executors_lock = threading.Lock()

        self._state_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._started = False
        self._timezone: Optional[timedelta] = None
        self._daemon = False
        self._timer: Optional[TimerThread] = None

        logger.debug("Scheduler %s created", self.guid)

    # -- configuration -------------------------------------------------------

    def set_timezone(self, offset: Optional[timedelta]) -> None:
        """
        Set the fixed offset from UTC used to match patterns.

        Args:
            offset: Offset as a timedelta, or None to use the local time
        """
        if offset is not None and not isinstance(offset, timedelta):
            raise TypeError(
                f"timezone offset must be a timedelta or None, got {type(offset).__name__}"
            )
        with self._state_lock:
            self._timezone = offset

    def get_timezone(self) -> Optional[timedelta]:
        with self._state_lock:
            return self._timezone

    def set_daemon(self, daemon: bool) -> None:
        """
        Mark the threads spawned by the scheduler as daemon threads.

        Raises:
            IllegalStateError: If the scheduler is already started
        """
        with self._state_lock:
            if self._started:
                raise IllegalStateError("Scheduler already started")
            self._daemon = bool(daemon)

    def is_daemon(self) -> bool:
        with self._state_lock:
            return self._daemon

    def is_started(self) -> bool:
        with self._state_lock:
            return self._started

    # -- task sources --------------------------------------------------------

    def add_task_source(self, source: TaskSource) -> None:
        with self._sources_lock:
            self._sources.append(source)
        logger.debug("Task source %r added", source)

    def remove_task_source(self, source: TaskSource) -> None:
        if source is self._memory_source:
            raise ValueError("The in-memory task source cannot be removed")
        with self._sources_lock:
            if source in self._sources:
                self._sources.remove(source)
                logger.debug("Task source %r removed", source)

    def get_task_sources(self) -> List[TaskSource]:
        """Snapshot of the registered sources, the in-memory one first."""
        with self._sources_lock:
            return list(self._sources)

    # -- listeners -----------------------------------------------------------

    def add_listener(self, listener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def get_listeners(self) -> List:
        with self._listeners_lock:
            return list(self._listeners)

    # -- in-memory scheduling ------------------------------------------------

    def schedule(self, pattern: Union[str, SchedulingPattern], task) -> str:
        """
        Schedule a task.

        Args:
            pattern: Pattern text or a parsed SchedulingPattern
            task: A Task, or a callable taking the execution context

        Returns:
            The ID of the scheduled entry

        Raises:
            InvalidPatternError: If the pattern text is malformed
        """
        if not isinstance(pattern, SchedulingPattern):
            pattern = SchedulingPattern(pattern)
        task = as_task(task)
        task_id = self._memory_source.add(pattern, task)
        logger.info("Scheduled %r with pattern '%s' (id %s)", task, pattern, task_id)
        return task_id

    def reschedule(self, task_id: str, pattern: Union[str, SchedulingPattern]) -> bool:
        """
        Change the pattern of a scheduled entry.

        Returns:
            True if the entry exists and was updated
        """
        if not isinstance(pattern, SchedulingPattern):
            pattern = SchedulingPattern(pattern)
        updated = self._memory_source.update(task_id, pattern)
        if updated:
            logger.info("Rescheduled %s with pattern '%s'", task_id, pattern)
        else:
            logger.warning("Cannot reschedule unknown task id %s", task_id)
        return updated

    def deschedule(self, task_id: str) -> bool:
        """Remove a scheduled entry. Returns False if the ID is unknown."""
        removed = self._memory_source.remove(task_id)
        if removed:
            logger.info("Descheduled %s", task_id)
        return removed

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._memory_source.get_task(task_id)

    def get_pattern(self, task_id: str) -> Optional[SchedulingPattern]:
        return self._memory_source.get_scheduling_pattern(task_id)

    # -- executions ----------------------------------------------------------

    def get_executing_tasks(self) -> List[TaskExecutor]:
        """Executors whose worker thread has not finished yet."""
        with self._executors_lock:
            if self._executors is None:
                return []
            return list(self._executors.values())

    def launch(self, task) -> TaskExecutor:
        """
        Run a task immediately, outside of any schedule.

        Args:
            task: A Task, or a callable taking the execution context

        Returns:
            The executor of the new execution

        Raises:
            IllegalStateError: If the scheduler is not started
        """
        task = as_task(task)
        if not self.is_started():
            raise IllegalStateError("Scheduler not started")
        executor = self._spawn_executor(task)
        if executor is None:
            raise IllegalStateError("Scheduler is stopping")
        return executor

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """
        Start the timer thread.

        Raises:
            IllegalStateError: If the scheduler is already started
        """
        with self._lifecycle_lock:
            with self._state_lock:
                if self._started:
                    raise IllegalStateError("Scheduler already started")

            with self._launchers_lock:
                self._launchers = {}
            with self._executors_lock:
                self._executors = {}

            with self._state_lock:
                self._started = True
                daemon = self._daemon

            self._timer = TimerThread(self, daemon=daemon)
            self._timer.start()
            logger.info("Scheduler %s started", self.guid)

    def stop(self) -> None:
        """
        Stop the scheduler and wait for every thread it spawned to exit.

        The timer is cancelled first, then every running launcher. Running
        executions are asked to stop when their task supports it; either
        way this call returns only once all of them have terminated.

        Raises:
            IllegalStateError: If the scheduler is not started
        """
        with self._lifecycle_lock:
            with self._state_lock:
                if not self._started:
                    raise IllegalStateError("Scheduler not started")

            logger.info("Stopping scheduler %s...", self.guid)

            timer, self._timer = self._timer, None
            if timer is not None:
                timer.cancel()
                join_until_dead(timer)

            with self._launchers_lock:
                launchers = list(self._launchers.values())
                self._launchers = None
            for launcher in launchers:
                launcher.cancel()
            for launcher in launchers:
                join_until_dead(launcher)

            with self._executors_lock:
                executors = list(self._executors.values())
                self._executors = None
            if executors:
                logger.info("Waiting for %d running execution(s)", len(executors))
            for executor in executors:
                if executor.can_be_stopped():
                    executor.stop()
                executor.wait_until_terminated()

            with self._state_lock:
                self._started = False
            logger.info("Scheduler %s stopped", self.guid)

    # -- hooks called by the scheduler's own threads -------------------------

    def _spawn_launcher(self, reference_time: float) -> Optional[LauncherThread]:
        launcher = LauncherThread(
            self, self.get_task_sources(), reference_time, daemon=self.is_daemon()
        )
        with self._launchers_lock:
            if self._launchers is None:
                return None
            self._launchers[launcher.guid] = launcher
            # Started under the lock so a concurrent stop() cannot miss it
            launcher.start()
        return launcher

    def _spawn_executor(self, task: Task) -> Optional[TaskExecutor]:
        executor = TaskExecutor(self, task)
        daemon = self.is_daemon()
        with self._executors_lock:
            if self._executors is None:
                logger.debug("Not launching %r, scheduler is not running", task)
                return None
            self._executors[executor.guid] = executor
            # Started under the lock so a concurrent stop() cannot miss it
            executor.start(daemon=daemon)
        return executor

    def _notify_launcher_completed(self, launcher: LauncherThread) -> None:
        with self._launchers_lock:
            if self._launchers is not None:
                self._launchers.pop(launcher.guid, None)

    def _notify_executor_completed(self, executor: TaskExecutor) -> None:
        with self._executors_lock:
            if self._executors is not None:
                self._executors.pop(executor.guid, None)

    def _notify_task_launching(self, executor: TaskExecutor) -> None:
        logger.debug("Launching %r (executor %s)", executor.get_task(), executor.guid)
        fire(self.get_listeners(), "task_launching", executor)

    def _notify_task_succeeded(self, executor: TaskExecutor) -> None:
        elapsed = time.time() - (executor.get_start_time() or time.time())
        logger.success(
            "Task %r completed in %.2fs (executor %s)",
            executor.get_task(),
            elapsed,
            executor.guid,
        )
        fire(self.get_listeners(), "task_succeeded", executor)

    def _notify_task_failed(self, executor: TaskExecutor, error: BaseException) -> None:
        handled = fire(self.get_listeners(), "task_failed", executor, error)
        if not handled:
            logger.failure(
                "Task %r failed (executor %s): %s",
                executor.get_task(),
                executor.guid,
                error,
                exc_info=error,
            )

    # -- status --------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status information."""
        timezone_offset = self.get_timezone()
        with self._launchers_lock:
            launcher_count = len(self._launchers) if self._launchers else 0

        return {
            "started": self.is_started(),
            "daemon": self.is_daemon(),
            "timezone_offset_minutes": (
                int(timezone_offset.total_seconds() // 60)
                if timezone_offset is not None
                else None
            ),
            "task_sources": len(self.get_task_sources()),
            "listeners": len(self.get_listeners()),
            "running_launchers": launcher_count,
            "running_executors": len(self.get_executing_tasks()),
            "tasks": [
                {
                    "id": task_id,
                    "task": repr(task),
                    "pattern": str(pattern),
                    "next_run": self._next_run(pattern, timezone_offset),
                }
                for task_id, pattern, task in self._memory_source.items()
            ],
            "resource_usage": {
                "memory_mb": self._get_memory_usage(),
                "active_threads": threading.active_count(),
            },
        }

    @staticmethod
    def _next_run(
        pattern: SchedulingPattern, timezone_offset: Optional[timedelta]
    ) -> Optional[str]:
        try:
            predictor = Predictor(pattern, timezone_offset=timezone_offset)
            return predictor.next_matching_date().isoformat()
        except PredictionError:
            return None

    def _get_memory_usage(self) -> int:
        """Get current memory usage in MB."""
        try:
            process = psutil.Process()
            return int(process.memory_info().rss / 1024 / 1024)
        except psutil.Error as e:
            logger.debug("Could not read memory usage: %s", e)
            return 0

    def __repr__(self) -> str:
        return f"Scheduler(guid={self.guid!r}, started={self.is_started()})"


def create_scheduler(settings=None) -> Scheduler:
    """
    Convenience function to create a scheduler configured from settings.

    Args:
        settings: A ``settings.Settings`` instance; loaded from the
            environment when omitted

    Returns:
        A new, not yet started Scheduler
    """
    if settings is None:
        from settings import Settings

        settings = Settings()

    scheduler = Scheduler()
    scheduler.set_timezone(settings.timezone_offset)
    scheduler.set_daemon(settings.daemon)
    return scheduler

"""
Task executor: runs one task invocation in its own worker thread.

Each launch of a task, scheduled or manual, gets a fresh TaskExecutor.
The executor exposes control over the ongoing execution (pause, resume,
stop) as far as the task declares support for it, and reports progress
to its listeners.

State machine:

    CREATED --start--> RUNNING <--pause/resume--> PAUSED
    RUNNING/PAUSED --stop--> STOPPING
    any started state --worker exits--> TERMINATED
"""

import threading
import time
import uuid
from enum import Enum
from typing import List, Optional

from colored_logger import get_colored_logger

from .errors import IllegalStateError, UnsupportedOperationError
from .listeners import fire
from .task import Task, TaskExecutionContext
from .threads import join_until_dead

logger = get_colored_logger(__name__)


class TaskState(Enum):
    """Lifecycle state of a TaskExecutor."""

    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class _ExecutionContext(TaskExecutionContext):
    """Context bound to one executor."""

    def __init__(self, executor: "TaskExecutor"):
        self._executor = executor
        self._message = ""
        self._completeness = 0.0

    def get_scheduler(self):
        return self._executor.get_scheduler()

    def get_task_executor(self) -> "TaskExecutor":
        return self._executor

    def is_stopped(self) -> bool:
        return self._executor.is_stopped()

    def pause_if_requested(self) -> None:
        self._executor._wait_while_paused()

    def sleep(self, seconds: float) -> bool:
        return self._executor._stop_event.wait(seconds)

    def set_status_message(self, message: Optional[str]) -> None:
        self._message = message or ""
        self._executor._fire("status_message_changed", self._message)

    def set_completeness(self, completeness: float) -> None:
        if not 0.0 <= completeness <= 1.0:
            logger.warning(
                "Ignoring completeness %r outside [0, 1] for executor %s",
                completeness,
                self._executor.guid,
            )
            return
        self._completeness = float(completeness)
        logger.progress(
            "Executor %s at %.0f%%", self._executor.guid, self._completeness * 100
        )
        self._executor._fire("completeness_value_changed", self._completeness)

    def get_status_message(self) -> str:
        return self._message

    def get_completeness(self) -> float:
        return self._completeness


class TaskExecutor:
    """
    Owns the worker thread of one task execution.

    Executors are created by the Scheduler (for every pattern match and for
    every ``Scheduler.launch`` call); they are returned by
    ``Scheduler.get_executing_tasks`` while alive.
    """

    def __init__(self, scheduler, task: Task):
        self.guid = str(uuid.uuid4())
        self._scheduler = scheduler
        self._task = task
        self._context = _ExecutionContext(self)

        self._listeners: List = []
        self._listeners_lock = threading.Lock()

        # Guards state/paused and is the condition paused workers wait on
        self._condition = threading.Condition()
        self._state = TaskState.CREATED
        self._paused = False
        self._stop_event = threading.Event()
        # Serializes control transitions with their listener notifications
        self._control_lock = threading.RLock()

        self._thread: Optional[threading.Thread] = None
        self._start_time: Optional[float] = None
        self._error: Optional[BaseException] = None

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

    def _fire(self, event: str, *args) -> None:
        fire(self.get_listeners(), event, self, *args)

    # -- accessors -----------------------------------------------------------

    def get_guid(self) -> str:
        return self.guid

    def get_scheduler(self):
        return self._scheduler

    def get_task(self) -> Task:
        return self._task

    def get_state(self) -> TaskState:
        with self._condition:
            return self._state

    def get_start_time(self) -> Optional[float]:
        """POSIX timestamp of the start, or None if not started yet."""
        return self._start_time

    def get_error(self) -> Optional[BaseException]:
        """The error the task failed with, if any."""
        return self._error

    def can_be_paused(self) -> bool:
        return self._task.can_be_paused()

    def can_be_stopped(self) -> bool:
        return self._task.can_be_stopped()

    def supports_status_tracking(self) -> bool:
        return self._task.supports_status_tracking()

    def supports_completeness_tracking(self) -> bool:
        return self._task.supports_completeness_tracking()

    def get_status_message(self) -> str:
        if not self.supports_status_tracking():
            raise UnsupportedOperationError("Status tracking not supported")
        return self._context.get_status_message()

    def get_completeness(self) -> float:
        if not self.supports_completeness_tracking():
            raise UnsupportedOperationError("Completeness tracking not supported")
        return self._context.get_completeness()

    def is_alive(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def is_paused(self) -> bool:
        with self._condition:
            return self._paused

    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    # -- control -------------------------------------------------------------

    def start(self, daemon: bool = False) -> None:
        """Spawn the worker thread. An executor can be started only once."""
        with self._condition:
            if self._state is not TaskState.CREATED:
                raise IllegalStateError(f"Executor {self.guid} already started")
            self._state = TaskState.RUNNING
            self._start_time = time.time()
            self._thread = threading.Thread(
                target=self._run,
                name=f"crontick-executor-{self.guid[:8]}",
                daemon=daemon,
            )
        logger.debug("Starting executor %s for %r", self.guid, self._task)
        self._thread.start()

    def pause(self) -> None:
        """
        Ask the task to pause at its next ``pause_if_requested`` call.

        Raises:
            UnsupportedOperationError: If the task cannot be paused
        """
        if not self.can_be_paused():
            raise UnsupportedOperationError("Pause not supported")
        with self._control_lock:
            with self._condition:
                if self._state is not TaskState.RUNNING:
                    return
                self._state = TaskState.PAUSED
                self._paused = True
            logger.info("Pausing executor %s", self.guid)
            self._fire("execution_pausing")

    def resume(self) -> None:
        """Release a paused execution."""
        with self._control_lock:
            if not self._release_pause():
                return
            logger.info("Resuming executor %s", self.guid)
            self._fire("execution_resuming")

    def _release_pause(self) -> bool:
        with self._condition:
            # A stopping executor is released by stop() itself
            if not self._paused or self._state is not TaskState.PAUSED:
                return False
            self._paused = False
            self._state = TaskState.RUNNING
            self._condition.notify_all()
            return True

    def stop(self) -> None:
        """
        Signal the task to stop and wait until the worker thread has exited.

        Stopping is cooperative: the task must notice ``is_stopped()``.

        Raises:
            UnsupportedOperationError: If the task cannot be stopped
        """
        if not self.can_be_stopped():
            raise UnsupportedOperationError("Stop not supported")

        with self._control_lock:
            with self._condition:
                if self._thread is None:
                    return
                signalled = self._state in (TaskState.RUNNING, TaskState.PAUSED)
                was_paused = self._state is TaskState.PAUSED
                if signalled:
                    self._state = TaskState.STOPPING

            if signalled:
                logger.info("Stopping executor %s", self.guid)
                if was_paused:
                    self._fire("execution_resuming")
                self._fire("execution_stopping")
                # Listeners hear about the stop before the worker can react to it
                with self._condition:
                    self._paused = False
                    self._stop_event.set()
                    self._condition.notify_all()

        self.wait_until_terminated()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the worker thread to exit (no-op if never started)."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def wait_until_terminated(self) -> None:
        """Block until the worker thread is dead, however long it takes."""
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            join_until_dead(thread)

    def _wait_while_paused(self) -> None:
        with self._condition:
            while self._paused and not self._stop_event.is_set():
                self._condition.wait()

    # -- worker --------------------------------------------------------------

    def _run(self) -> None:
        error = None
        try:
            self._scheduler._notify_task_launching(self)
            self._task.execute(self._context)
            self._scheduler._notify_task_succeeded(self)
        except Exception as e:
            error = e
            self._error = e
            self._scheduler._notify_task_failed(self, e)
        finally:
            with self._condition:
                self._state = TaskState.TERMINATED
                self._paused = False
                self._condition.notify_all()
            self._fire("execution_terminated", error)
            self._scheduler._notify_executor_completed(self)

    def __repr__(self) -> str:
        return f"TaskExecutor(guid={self.guid!r}, task={self._task!r}, state={self.get_state().value})"

"""
The task contract and the execution context handed to running tasks.
"""

from typing import Callable, Optional


class TaskExecutionContext:
    """
    What a running task can see of its own execution.

    Tasks supporting pause should call ``pause_if_requested()`` at safe
    points; tasks supporting stop should poll ``is_stopped()`` (or use
    ``sleep()``) and return as soon as it reports True.
    """

    def get_scheduler(self):
        raise NotImplementedError

    def get_task_executor(self):
        raise NotImplementedError

    def is_stopped(self) -> bool:
        raise NotImplementedError

    def pause_if_requested(self) -> None:
        raise NotImplementedError

    def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True early if the execution was stopped."""
        raise NotImplementedError

    def set_status_message(self, message: Optional[str]) -> None:
        raise NotImplementedError

    def set_completeness(self, completeness: float) -> None:
        raise NotImplementedError


class Task:
    """
    Base class for anything the scheduler can run.

    Subclasses implement ``execute`` and override the capability methods
    for the control features they honour.
    """

    def execute(self, context: TaskExecutionContext) -> None:
        raise NotImplementedError

    def can_be_paused(self) -> bool:
        return False

    def can_be_stopped(self) -> bool:
        return False

    def supports_status_tracking(self) -> bool:
        return False

    def supports_completeness_tracking(self) -> bool:
        return False


class RunnableTask(Task):
    """
    Wraps a plain callable taking the execution context.

    Capability flags are fixed at construction so a callable that polls
    the context can still opt into pause/stop/tracking.
    """

    def __init__(
        self,
        runnable: Callable[[TaskExecutionContext], None],
        can_be_paused: bool = False,
        can_be_stopped: bool = False,
        supports_status_tracking: bool = False,
        supports_completeness_tracking: bool = False,
    ):
        if not callable(runnable):
            raise TypeError(f"runnable must be callable, got {type(runnable).__name__}")
        self.runnable = runnable
        self._can_be_paused = can_be_paused
        self._can_be_stopped = can_be_stopped
        self._supports_status_tracking = supports_status_tracking
        self._supports_completeness_tracking = supports_completeness_tracking

    def execute(self, context: TaskExecutionContext) -> None:
        self.runnable(context)

    def can_be_paused(self) -> bool:
        return self._can_be_paused

    def can_be_stopped(self) -> bool:
        return self._can_be_stopped

    def supports_status_tracking(self) -> bool:
        return self._supports_status_tracking

    def supports_completeness_tracking(self) -> bool:
        return self._supports_completeness_tracking

    def __repr__(self) -> str:
        name = getattr(self.runnable, "__qualname__", repr(self.runnable))
        return f"RunnableTask({name})"


def as_task(task) -> Task:
    """Return ``task`` itself if it is a Task, else wrap a callable in RunnableTask."""
    if isinstance(task, Task):
        return task
    if callable(task):
        return RunnableTask(task)
    raise TypeError(f"Expected a Task or a callable, got {type(task).__name__}")

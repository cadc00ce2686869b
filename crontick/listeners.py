"""
Listener interfaces and the fan-out used to notify them.

Listeners are duck-typed: the scheduler calls a callback only if the
listener defines it, so an object can implement just the events it cares
about. The base classes below are no-op conveniences.
"""

from typing import Iterable, Optional

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)


class SchedulerListener:
    """Scheduler-level events, fired from the executor's worker thread."""

    def task_launching(self, executor) -> None:
        pass

    def task_succeeded(self, executor) -> None:
        pass

    def task_failed(self, executor, error: BaseException) -> None:
        pass


class TaskExecutorListener:
    """Events of a single execution."""

    def execution_pausing(self, executor) -> None:
        pass

    def execution_resuming(self, executor) -> None:
        pass

    def execution_stopping(self, executor) -> None:
        pass

    def execution_terminated(self, executor, error: Optional[BaseException]) -> None:
        pass

    def status_message_changed(self, executor, message: str) -> None:
        pass

    def completeness_value_changed(self, executor, value: float) -> None:
        pass


def fire(listeners: Iterable, event: str, *args) -> int:
    """
    Call ``event`` on every listener defining it.

    A listener raising does not stop the fan-out; the error is logged.

    Returns:
        Number of listeners that handled the event
    """
    handled = 0
    for listener in listeners:
        callback = getattr(listener, event, None)
        if not callable(callback):
            continue
        handled += 1
        try:
            callback(*args)
        except Exception:
            logger.error(
                "Listener %r raised while handling %s", listener, event, exc_info=True
            )
    return handled

"""
crontick: a cron-style task scheduler.

This package provides:
- Scheduling patterns (5-field cron syntax with L, aliases and "|" alternatives)
- Prediction of the next matching dates
- Minute-tick scheduling with one thread per launched execution
- Cooperative pause/stop and progress reporting for running tasks
- Listener notification of launches, successes and failures
"""

from .cron_parser import CronParser, SchedulingPattern
from .errors import (
    CronError,
    IllegalStateError,
    InvalidPatternError,
    PredictionError,
    UnsupportedOperationError,
)
from .listeners import SchedulerListener, TaskExecutorListener
from .predictor import Predictor
from .task import RunnableTask, Task, TaskExecutionContext
from .task_executor import TaskExecutor, TaskState
from .task_scheduler import Scheduler, create_scheduler
from .task_source import MemoryTaskSource, TaskSource, TaskTable

__all__ = [
    "CronError",
    "CronParser",
    "IllegalStateError",
    "InvalidPatternError",
    "MemoryTaskSource",
    "PredictionError",
    "Predictor",
    "RunnableTask",
    "Scheduler",
    "SchedulerListener",
    "SchedulingPattern",
    "Task",
    "TaskExecutionContext",
    "TaskExecutor",
    "TaskExecutorListener",
    "TaskSource",
    "TaskState",
    "TaskTable",
    "UnsupportedOperationError",
    "create_scheduler",
]

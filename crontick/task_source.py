"""
Task sources: providers of (pattern, task) pairs queried once per tick.
"""

import threading
import uuid
from typing import Dict, Iterator, List, Optional, Tuple

from colored_logger import get_colored_logger

from .cron_parser import SchedulingPattern
from .task import Task

logger = get_colored_logger(__name__)


class TaskTable:
    """An ordered list of (SchedulingPattern, Task) pairs."""

    def __init__(self):
        self._entries: List[Tuple[SchedulingPattern, Task]] = []

    def add(self, pattern: SchedulingPattern, task: Task) -> None:
        self._entries.append((pattern, task))

    def size(self) -> int:
        return len(self._entries)

    def get_task(self, index: int) -> Task:
        return self._entries[index][1]

    def get_scheduling_pattern(self, index: int) -> SchedulingPattern:
        return self._entries[index][0]

    def remove(self, index: int) -> None:
        del self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[SchedulingPattern, Task]]:
        return iter(list(self._entries))


class TaskSource:
    """
    Interface for external providers of scheduled tasks.

    ``get_tasks`` is called once per tick from a launcher thread; it must
    not have side effects and must return the pairs in a stable order.
    """

    def get_tasks(self) -> TaskTable:
        raise NotImplementedError


class MemoryTaskSource(TaskSource):
    """The in-memory source behind Scheduler.schedule()/reschedule()/deschedule()."""

    def __init__(self):
        # dict keeps insertion order, which is the registration order
        self._entries: Dict[str, Tuple[SchedulingPattern, Task]] = {}
        self._lock = threading.Lock()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def add(self, pattern: SchedulingPattern, task: Task) -> str:
        """Store a pair and return the ID assigned to it."""
        task_id = str(uuid.uuid4())
        with self._lock:
            self._entries[task_id] = (pattern, task)
        return task_id

    def update(self, task_id: str, pattern: SchedulingPattern) -> bool:
        """Replace the pattern of an entry, keeping its task and position."""
        with self._lock:
            entry = self._entries.get(task_id)
            if entry is None:
                return False
            self._entries[task_id] = (pattern, entry[1])
            return True

    def remove(self, task_id: str) -> bool:
        with self._lock:
            return self._entries.pop(task_id, None) is not None

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            entry = self._entries.get(task_id)
        return entry[1] if entry else None

    def get_scheduling_pattern(self, task_id: str) -> Optional[SchedulingPattern]:
        with self._lock:
            entry = self._entries.get(task_id)
        return entry[0] if entry else None

    def items(self) -> List[Tuple[str, SchedulingPattern, Task]]:
        """Snapshot of (id, pattern, task) triples in registration order."""
        with self._lock:
            return [(task_id, p, t) for task_id, (p, t) in self._entries.items()]

    def get_tasks(self) -> TaskTable:
        table = TaskTable()
        with self._lock:
            for pattern, task in self._entries.values():
                table.add(pattern, task)
        return table

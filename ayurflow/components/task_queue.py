"""
Task queue for ayurflow

Holds pending coordinated tasks ordered by priority, then submission order.
"""

import itertools
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..core.models import CoordinatedTask

logger = logging.getLogger(__name__)


class TaskQueue:
    """
    Priority queue of pending tasks

    The list is kept sorted by (priority rank descending, submission sequence
    ascending) after every submission, so equal priorities stay FIFO.
    """

    def __init__(self):
        self._entries: List[Tuple[int, int, CoordinatedTask]] = []
        self._sequence = itertools.count()

        self.stats = {
            'tasks_submitted': 0,
            'tasks_dequeued': 0,
            'tasks_removed': 0,
        }

    def submit(self, task: CoordinatedTask) -> str:
        """Insert a task and re-sort; never blocks"""
        self._entries.append((-task.priority.rank, next(self._sequence), task))
        self._entries.sort(key=lambda entry: (entry[0], entry[1]))
        self.stats['tasks_submitted'] += 1
        logger.debug(f"Queued task {task.id} ({task.priority.value}), depth={len(self._entries)}")
        return task.id

    def next_eligible(self, active_count: int, max_concurrent: int) -> Optional[CoordinatedTask]:
        """Pop the head of the queue if a concurrency slot is free"""
        if active_count >= max_concurrent or not self._entries:
            return None
        _, _, task = self._entries.pop(0)
        self.stats['tasks_dequeued'] += 1
        return task

    def peek(self) -> Optional[CoordinatedTask]:
        return self._entries[0][2] if self._entries else None

    def remove(self, task_id: str) -> Optional[CoordinatedTask]:
        """Remove a still-queued task, e.g. on cancellation"""
        for index, (_, _, task) in enumerate(self._entries):
            if task.id == task_id:
                del self._entries[index]
                self.stats['tasks_removed'] += 1
                return task
        return None

    def drain(self) -> List[CoordinatedTask]:
        """Remove and return every queued task in queue order"""
        tasks = [task for _, _, task in self._entries]
        self.stats['tasks_removed'] += len(tasks)
        self._entries.clear()
        return tasks

    def pending_ids(self) -> List[str]:
        return [task.id for _, _, task in self._entries]

    def __contains__(self, task_id: str) -> bool:
        return any(task.id == task_id for _, _, task in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        by_priority: Dict[str, int] = {}
        for _, _, task in self._entries:
            by_priority[task.priority.value] = by_priority.get(task.priority.value, 0) + 1
        return {**self.stats, 'queue_depth': len(self._entries), 'by_priority': by_priority}

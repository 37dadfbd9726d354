"""
Lifecycle events for ayurflow

Components publish OrchestrationEvents on an EventBus; subscribers are plain
callables or coroutine functions registered explicitly.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Lifecycle events emitted by the coordinator"""
    TASK_SUBMITTED = "task_submitted"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_CANCELLED = "task_cancelled"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    WORKER_STARTED = "worker_started"
    WORKER_STOPPED = "worker_stopped"


@dataclass
class OrchestrationEvent:
    """A single lifecycle event"""
    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    source: str = "coordinator"
    task_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_type': self.event_type.value,
            'data': self.data,
            'source': self.source,
            'task_id': self.task_id,
            'timestamp': self.timestamp.isoformat(),
        }


EventCallback = Callable[[OrchestrationEvent], Any]


class EventBus:
    """
    Explicit subscriber list for lifecycle events

    Subscriber errors are logged and never reach the publisher. Coroutine
    subscribers are scheduled on the running loop.
    """

    def __init__(self):
        self._subscribers: List[EventCallback] = []
        self._pending: Set[asyncio.Task] = set()
        self.stats = {
            'events_emitted': 0,
            'subscriber_errors': 0,
        }

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register a subscriber; returns a function that removes it"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(
        self,
        event_type: EventType,
        task_id: Optional[str] = None,
        source: str = "coordinator",
        **data
    ) -> OrchestrationEvent:
        event = OrchestrationEvent(event_type=event_type, data=data, source=source, task_id=task_id)
        self.stats['events_emitted'] += 1

        for callback in list(self._subscribers):
            try:
                outcome = callback(event)
                if inspect.isawaitable(outcome):
                    self._schedule(outcome)
            except Exception as e:
                self.stats['subscriber_errors'] += 1
                logger.error(f"Event subscriber failed for {event_type.value}: {e}")

        return event

    def _schedule(self, awaitable):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Dropping async event subscriber call: no running event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = loop.create_task(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._on_subscriber_done)

    def _on_subscriber_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.stats['subscriber_errors'] += 1
            logger.error(f"Async event subscriber failed: {error}")

    async def drain(self):
        """Wait for scheduled async subscribers to finish"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class LoggingSubscriber:
    """Writes lifecycle events to the ayurflow.events logger"""

    def __init__(self, logger_name: str = "ayurflow.events"):
        self.logger = logging.getLogger(logger_name)

    def __call__(self, event: OrchestrationEvent):
        level = logging.WARNING if event.event_type in (EventType.TASK_FAILED, EventType.STEP_FAILED) else logging.INFO
        details = ", ".join(f"{key}={value}" for key, value in event.data.items())
        prefix = f"[{event.task_id}] " if event.task_id else ""
        self.logger.log(level, f"{prefix}{event.event_type.value} {details}".rstrip())

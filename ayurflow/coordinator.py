"""
Coordinator for ayurflow

The Coordinator is the explicit context object that owns the task queue,
workflow planner, worker registry, scheduler, synthesizer, event bus and
task store. Nothing in ayurflow is global; create one Coordinator per
process and pass it where it is needed.

    async with Coordinator() as coordinator:
        task_id = coordinator.submit_task("research", {"query": "ashwagandha"})
        task = await coordinator.wait_for_task(task_id)
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from .base.config import OrchestratorConfig
from .base.events import EventBus, EventType, LoggingSubscriber
from .components.planner import WorkflowPlanner
from .components.scheduler import Scheduler
from .components.synthesizer import ResultSynthesizer
from .components.task_queue import TaskQueue
from .core.errors import CoordinatorClosedError
from .core.models import (
    CoordinatedTask,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    parse_category,
    parse_priority,
)
from .core.persistence import TaskStore, create_task_store
from .workers import WorkerDefinition, WorkerRegistry, builtin_definitions

logger = logging.getLogger(__name__)


class Coordinator:
    """Entry point for submitting and observing research tasks"""

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        workers: Optional[Iterable[WorkerDefinition]] = None,
        planner: Optional[WorkflowPlanner] = None,
        store: Optional[TaskStore] = None,
        events: Optional[EventBus] = None,
        log_events: bool = True
    ):
        self.config = config or OrchestratorConfig()
        self.config.validate()

        self.events = events or EventBus()
        if log_events:
            self.events.subscribe(LoggingSubscriber())

        self.planner = planner or WorkflowPlanner(self.config.templates_path)
        definitions = list(workers) if workers is not None else builtin_definitions()
        self.registry = WorkerRegistry.from_definitions(
            definitions,
            overrides={name: self.config.worker_overrides(name) for name in self.config.workers},
        )
        self.store = store or create_task_store(self.config.persistence, self.config.db_path)
        self.queue = TaskQueue()
        self.synthesizer = ResultSynthesizer(self.config.synthesis)
        self.scheduler = Scheduler(
            queue=self.queue,
            registry=self.registry,
            synthesizer=self.synthesizer,
            events=self.events,
            store=self.store,
            max_concurrent_tasks=self.config.max_concurrent_tasks,
        )

        self._started = False
        self._closed = False

    async def __aenter__(self) -> 'Coordinator':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.shutdown()

    async def start(self):
        if self._started:
            return
        if self._closed:
            raise CoordinatorClosedError("Coordinator has been shut down")

        await self.store.initialize()
        for runtime in self.registry.runtimes():
            await runtime.start()
            self.events.emit(EventType.WORKER_STARTED, source=runtime.worker_id, worker_type=runtime.worker_type)
        await self.scheduler.start()

        self._started = True
        logger.info(f"Coordinator started with workers: {', '.join(self.registry.worker_types())}")

    def submit_task(
        self,
        category: Union[str, TaskCategory],
        input: Optional[Dict[str, Any]] = None,
        priority: Union[str, TaskPriority] = TaskPriority.MEDIUM
    ) -> str:
        """
        Plan and queue a task, returning its id

        Raises:
            ConfigurationError: unknown category or an unusable template
            CoordinatorClosedError: shutdown has begun
        """
        if self._closed:
            raise CoordinatorClosedError("Coordinator is shutting down; no new tasks accepted")

        category = parse_category(category)
        priority = parse_priority(priority)
        task_input = dict(input or {})

        required = self.planner.required_workers(category)
        self.registry.require(required)
        workflow = self.planner.generate(category, required, task_input)

        task = CoordinatedTask(
            category=category,
            priority=priority,
            input=task_input,
            required_workers=sorted(required),
            workflow=workflow,
        )
        logger.info(f"Submitted {category.value} task {task.id} ({priority.value}, {len(workflow)} steps)")
        return self.scheduler.add_task(task)

    def get_task_status(self, task_id: str) -> Optional[CoordinatedTask]:
        return self.scheduler.get_task(task_id)

    def list_active_tasks(self) -> List[CoordinatedTask]:
        return self.scheduler.list_tasks(TaskStatus.IN_PROGRESS)

    def list_tasks(self, status: Optional[Union[str, TaskStatus]] = None) -> List[CoordinatedTask]:
        if isinstance(status, str):
            status = TaskStatus(status)
        return self.scheduler.list_tasks(status)

    def cancel_task(self, task_id: str) -> bool:
        return self.scheduler.cancel_task(task_id)

    async def wait_for_task(self, task_id: str, timeout: Optional[float] = None) -> Optional[CoordinatedTask]:
        """Wait until a task is terminal; raises asyncio.TimeoutError on timeout"""
        return await self.scheduler.wait_for_task(task_id, timeout)

    async def get_worker_statuses(self) -> Dict[str, Dict[str, Any]]:
        statuses = {}
        for runtime in self.registry.runtimes():
            status = runtime.get_status()
            status['health'] = await runtime.health_check()
            statuses[runtime.worker_type] = status
        return statuses

    def record_feedback(self, worker_type: str, correct: bool):
        """Report whether a worker's output was judged correct"""
        self.registry.get(worker_type).record_feedback(correct)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'queue': self.queue.get_stats(),
            'scheduler': dict(self.scheduler.stats),
            'active_tasks': self.scheduler.active_count,
            'events': dict(self.events.stats),
        }

    async def shutdown(self, grace_period: Optional[float] = None):
        """
        Stop accepting tasks and wind down

        Queued tasks are cancelled, running tasks get the grace period to
        finish and are then cancelled cooperatively, workers are stopped
        last.
        """
        if self._closed:
            return
        self._closed = True
        grace = self.config.shutdown_grace_period if grace_period is None else grace_period
        logger.info(f"Coordinator shutting down (grace period {grace}s)")

        cancelled = self.scheduler.cancel_pending()
        if cancelled:
            logger.info(f"Cancelled {cancelled} queued tasks")

        if self._started:
            if not await self.scheduler.wait_for_running(grace):
                count = self.scheduler.request_cancel_running()
                logger.warning(f"{count} tasks still running after grace period; cancelling")
                for runtime in self.registry.runtimes():
                    await runtime.stop(grace_period=0)
                if not await self.scheduler.wait_for_running(1.0):
                    await self.scheduler.abort_running()

            for runtime in self.registry.runtimes():
                await runtime.stop(grace_period=grace)
                self.events.emit(EventType.WORKER_STOPPED, source=runtime.worker_id, worker_type=runtime.worker_type)

            await self.scheduler.stop()
            self._started = False

        await self.scheduler.flush()
        await self.events.drain()
        await self.store.shutdown()
        logger.info("Coordinator shut down")

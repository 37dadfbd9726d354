"""
Scheduler for ayurflow

Dequeues coordinated tasks while global concurrency slots are free and
drives each task's workflow: steps whose prerequisites are resolved are
launched (parallel steps together, others one at a time), prerequisite
outputs are merged into dependent inputs, optional-step failures become
gaps and a required-step failure fails the task. Completed workflows are
synthesized into the task's final result.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Set

from ..base.events import EventBus, EventType
from ..core.errors import AyurflowError, WorkflowAbortError
from ..core.models import (
    CoordinatedTask,
    StepGap,
    SynthesizedResult,
    TaskStatus,
    WorkerInput,
    WorkerOutput,
    WorkflowStep,
)
from ..core.persistence import TaskStore
from ..workers.registry import WorkerRegistry
from ..workers.runtime import WorkerRuntime
from .synthesizer import ResultSynthesizer
from .task_queue import TaskQueue

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Orchestration loop and workflow executor

    The scheduler is the only writer of CoordinatedTask state. Readers get
    deep copies; terminal tasks are frozen into a snapshot that is returned
    unchanged on every later read.
    """

    def __init__(
        self,
        queue: TaskQueue,
        registry: WorkerRegistry,
        synthesizer: ResultSynthesizer,
        events: Optional[EventBus] = None,
        store: Optional[TaskStore] = None,
        max_concurrent_tasks: int = 10
    ):
        self.queue = queue
        self.registry = registry
        self.synthesizer = synthesizer
        self.events = events or EventBus()
        self.store = store
        self.max_concurrent_tasks = max_concurrent_tasks

        self.tasks: Dict[str, CoordinatedTask] = {}
        self._snapshots: Dict[str, CoordinatedTask] = {}
        self._done: Dict[str, asyncio.Event] = {}
        self._running: Dict[str, asyncio.Task] = {}
        self._cancel_requested: Set[str] = set()
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._persisting: Set[asyncio.Task] = set()

        self._wake = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._started = False

        self.stats = {
            'tasks_started': 0,
            'tasks_completed': 0,
            'tasks_failed': 0,
            'tasks_cancelled': 0,
            'steps_completed': 0,
            'steps_failed': 0,
        }

    # Lifecycle

    async def start(self):
        if self._started:
            return
        self._started = True
        self._loop_task = asyncio.create_task(self._run_loop())
        self._wake.set()
        logger.info(f"Scheduler started (max_concurrent_tasks={self.max_concurrent_tasks})")

    async def stop(self):
        """Stop the dispatch loop; running workflows are not touched"""
        if not self._started:
            return
        self._started = False
        self._wake.set()
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        await self.flush()
        logger.info("Scheduler stopped")

    async def flush(self):
        """Wait for pending persistence writes"""
        if self._persisting:
            await asyncio.gather(*list(self._persisting), return_exceptions=True)

    async def _run_loop(self):
        while self._started:
            await self._wake.wait()
            self._wake.clear()
            self._dispatch()

    def _dispatch(self):
        while True:
            task = self.queue.next_eligible(len(self._running), self.max_concurrent_tasks)
            if task is None:
                return
            task.transition(TaskStatus.IN_PROGRESS)
            self.stats['tasks_started'] += 1
            self.events.emit(EventType.TASK_STARTED, task_id=task.id, category=task.category.value)
            self._running[task.id] = asyncio.create_task(self._run_task(task))

    # Task registry

    def add_task(self, task: CoordinatedTask) -> str:
        """Track a planned task and queue it"""
        self.tasks[task.id] = task
        self._done[task.id] = asyncio.Event()
        self.queue.submit(task)
        self.events.emit(
            EventType.TASK_SUBMITTED,
            task_id=task.id,
            category=task.category.value,
            priority=task.priority.value,
        )
        self._wake.set()
        return task.id

    def get_task(self, task_id: str) -> Optional[CoordinatedTask]:
        snapshot = self._snapshots.get(task_id)
        if snapshot is not None:
            return snapshot.model_copy(deep=True)
        task = self.tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    def list_tasks(self, status: Optional[TaskStatus] = None) -> List[CoordinatedTask]:
        tasks = [self.get_task(task_id) for task_id in self.tasks]
        return [task for task in tasks if status is None or task.status == status]

    @property
    def active_count(self) -> int:
        return len(self._running)

    async def wait_for_task(self, task_id: str, timeout: Optional[float] = None) -> Optional[CoordinatedTask]:
        done = self._done.get(task_id)
        if done is None:
            return None
        await asyncio.wait_for(done.wait(), timeout=timeout)
        return self.get_task(task_id)

    # Cancellation

    def cancel_task(self, task_id: str) -> bool:
        """
        Request cancellation

        Queued tasks are cancelled at once. Running tasks start no new steps
        and become cancelled when their in-flight steps finish.
        """
        task = self.tasks.get(task_id)
        if task is None or task.is_terminal:
            return False

        if task.status == TaskStatus.PENDING:
            self.queue.remove(task_id)
            task.mark_cancelled()
            self._finalize(task)
            return True

        self._cancel_requested.add(task_id)
        logger.info(f"Cancellation requested for running task {task_id}")
        return True

    def cancel_pending(self) -> int:
        """Cancel every queued task"""
        drained = self.queue.drain()
        for task in drained:
            task.mark_cancelled()
            self._finalize(task)
        return len(drained)

    def request_cancel_running(self) -> int:
        for task_id in self._running:
            self._cancel_requested.add(task_id)
        return len(self._running)

    async def wait_for_running(self, timeout: Optional[float] = None) -> bool:
        """Wait for running workflows; True if all finished in time"""
        if not self._running:
            return True
        _, pending = await asyncio.wait(list(self._running.values()), timeout=timeout)
        return not pending

    async def abort_running(self):
        """Cancel workflows that ignored cooperative cancellation"""
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Execution

    async def _run_task(self, task: CoordinatedTask):
        try:
            await self.execute_workflow(task)
        except asyncio.CancelledError:
            if not task.is_terminal:
                task.mark_cancelled()
                self._finalize(task)
            raise
        except Exception as e:
            logger.exception(f"Unexpected error while running task {task.id}")
            if not task.is_terminal:
                task.mark_failed(f"Internal error: {e}")
                self._finalize(task)
        finally:
            self._running.pop(task.id, None)
            self._cancel_requested.discard(task.id)
            self._wake.set()

    async def execute_workflow(self, task: CoordinatedTask):
        """Run all steps of an in-progress task and record the terminal outcome"""
        resolved: Set[str] = set()
        started: Set[str] = set()
        in_flight: Dict[asyncio.Task, WorkflowStep] = {}
        abort: Optional[WorkflowAbortError] = None

        try:
            while True:
                if abort is None and task.id not in self._cancel_requested:
                    for step in self._ready_steps(task, resolved, started, in_flight):
                        started.add(step.step_id)
                        in_flight[asyncio.create_task(self._run_step(task, step))] = step

                if not in_flight:
                    break

                done, _ = await asyncio.wait(list(in_flight), return_when=asyncio.FIRST_COMPLETED)
                for future in done:
                    step = in_flight.pop(future)
                    error = asyncio.CancelledError("step cancelled") if future.cancelled() else future.exception()
                    if error is None:
                        self._step_succeeded(task, step, future.result())
                        resolved.add(step.step_id)
                    elif step.optional:
                        self._step_gap(task, step, error)
                        resolved.add(step.step_id)
                    else:
                        self._step_failed(task, step, error)
                        if abort is None:
                            abort = WorkflowAbortError(step.step_id, error)
        except asyncio.CancelledError:
            for future in in_flight:
                future.cancel()
            raise

        if task.id in self._cancel_requested:
            task.mark_cancelled()
        elif abort is not None:
            task.mark_failed(abort.message)
        elif len(resolved) < len(task.workflow):
            unresolved = [step.step_id for step in task.workflow if step.step_id not in resolved]
            task.mark_failed(f"Workflow could not resolve steps: {', '.join(unresolved)}")
        else:
            task.mark_completed(self._synthesize(task))

        self._finalize(task)

    def _ready_steps(
        self,
        task: CoordinatedTask,
        resolved: Set[str],
        started: Set[str],
        in_flight: Dict[asyncio.Task, WorkflowStep]
    ) -> List[WorkflowStep]:
        # A running sequential step has the workflow to itself
        if any(not step.parallel for step in in_flight.values()):
            return []

        ready = [
            step for step in task.workflow
            if step.step_id not in started and all(dep in resolved for dep in step.dependencies)
        ]
        parallel = [step for step in ready if step.parallel]
        if parallel:
            return parallel
        if ready and not in_flight:
            return ready[:1]
        return []

    def _semaphore(self, runtime: WorkerRuntime) -> asyncio.Semaphore:
        semaphore = self._semaphores.get(runtime.worker_type)
        if semaphore is None:
            semaphore = asyncio.Semaphore(runtime.max_concurrent_tasks)
            self._semaphores[runtime.worker_type] = semaphore
        return semaphore

    def build_step_input(self, task: CoordinatedTask, step: WorkflowStep) -> Dict[str, Any]:
        """Declared step input merged with the outputs of its prerequisites"""
        prerequisites: Dict[str, Any] = {}
        for dep in step.dependencies:
            output = task.results.get(dep)
            if output is not None:
                prerequisites[dep] = output.model_dump(mode='json')
            else:
                gap = next((gap for gap in task.gaps if gap.step_id == dep), None)
                prerequisites[dep] = {'missing': True, 'reason': gap.error if gap else "no output"}

        step_input = copy.deepcopy(step.input)
        step_input['prerequisites'] = prerequisites
        return step_input

    async def _run_step(self, task: CoordinatedTask, step: WorkflowStep) -> WorkerOutput:
        step_input = self.build_step_input(task, step)
        task.step_inputs[step.step_id] = step_input
        runtime = self.registry.get(step.worker_type)

        async with self._semaphore(runtime):
            self.events.emit(EventType.STEP_STARTED, task_id=task.id, step_id=step.step_id, worker_type=step.worker_type)
            return await runtime.execute(
                WorkerInput(
                    task_id=f"{task.id}/{step.step_id}",
                    data=step_input,
                    metadata={'coordinated_task_id': task.id, 'step_id': step.step_id, 'category': task.category.value},
                ),
                max_retries=step.max_retries,
            )

    def _step_succeeded(self, task: CoordinatedTask, step: WorkflowStep, output: WorkerOutput):
        task.results[step.step_id] = output
        self.stats['steps_completed'] += 1
        self.events.emit(
            EventType.STEP_COMPLETED,
            task_id=task.id,
            step_id=step.step_id,
            worker_type=step.worker_type,
            confidence=output.confidence,
        )

    def _step_gap(self, task: CoordinatedTask, step: WorkflowStep, error: BaseException):
        task.gaps.append(StepGap(step_id=step.step_id, worker_type=step.worker_type, error=_describe(error)))
        self.stats['steps_failed'] += 1
        logger.warning(f"Optional step {step.step_id} of task {task.id} failed: {_describe(error)}")
        self.events.emit(
            EventType.STEP_FAILED,
            task_id=task.id,
            step_id=step.step_id,
            worker_type=step.worker_type,
            optional=True,
            error=_describe(error),
        )

    def _step_failed(self, task: CoordinatedTask, step: WorkflowStep, error: BaseException):
        self.stats['steps_failed'] += 1
        logger.error(f"Required step {step.step_id} of task {task.id} failed: {_describe(error)}")
        self.events.emit(
            EventType.STEP_FAILED,
            task_id=task.id,
            step_id=step.step_id,
            worker_type=step.worker_type,
            optional=False,
            error=_describe(error),
        )

    def _synthesize(self, task: CoordinatedTask) -> SynthesizedResult:
        try:
            return self.synthesizer.combine(
                task.results,
                step_workers={step.step_id: step.worker_type for step in task.workflow},
                required_workers=task.required_workers,
                gaps=task.gaps,
            )
        except Exception as e:
            logger.error(f"Synthesis failed for task {task.id}, returning degraded result: {e}")
            result = SynthesizedResult.empty(degraded=True, error=str(e))
            result.gaps = list(task.gaps)
            return result

    def _finalize(self, task: CoordinatedTask):
        """Freeze a terminal task, notify waiters and persist it"""
        self._snapshots[task.id] = task.model_copy(deep=True)

        if task.status == TaskStatus.COMPLETED:
            self.stats['tasks_completed'] += 1
            self.events.emit(
                EventType.TASK_COMPLETED,
                task_id=task.id,
                steps=len(task.results),
                gaps=len(task.gaps),
                quality=round(task.final_result.quality_score, 3),
            )
        elif task.status == TaskStatus.FAILED:
            self.stats['tasks_failed'] += 1
            self.events.emit(EventType.TASK_FAILED, task_id=task.id, error=task.error)
        else:
            self.stats['tasks_cancelled'] += 1
            self.events.emit(EventType.TASK_CANCELLED, task_id=task.id)

        done = self._done.get(task.id)
        if done is not None:
            done.set()

        if self.store is not None:
            persist = asyncio.ensure_future(self._persist(self._snapshots[task.id]))
            self._persisting.add(persist)
            persist.add_done_callback(self._persisting.discard)

    async def _persist(self, task: CoordinatedTask):
        try:
            await self.store.save_task(task)
        except Exception as e:
            logger.error(f"Failed to persist task {task.id}: {e}")


def _describe(error: BaseException) -> str:
    if isinstance(error, AyurflowError):
        return error.message
    return str(error) or type(error).__name__

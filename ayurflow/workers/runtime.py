"""
Worker runtime for ayurflow

WorkerRuntime wraps a WorkerDefinition with the uniform invocation
contract: input validation, a concurrency guard, a per-attempt timeout,
retry with exponential backoff, post-processing, metrics and lifecycle.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Dict, Optional, Set, Union

from pydantic import ValidationError

from ..core.errors import (
    AyurflowError,
    WorkerBusyError,
    WorkerProcessingError,
    WorkerTimeoutError,
    WorkerUnavailableError,
    WorkerValidationError,
    is_retryable_error,
)
from ..core.models import ProcessingResult, WorkerInput, WorkerMetrics, WorkerOutput, WorkerStatus
from .definition import WorkerContext, WorkerDefinition

logger = logging.getLogger(__name__)


class RetryPolicy:
    """Exponential backoff between attempts"""

    def __init__(self, max_retries: int = 3, initial_delay: float = 1.0, max_delay: float = 30.0, exponential_base: float = 2.0):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base

    def get_delay(self, attempt: int) -> float:
        """Delay in seconds before retrying after the given zero-based attempt"""
        delay = self.initial_delay * (self.exponential_base ** attempt)
        return max(0.0, min(delay, self.max_delay))


class WorkerRuntime:
    """
    Runs invocations of one worker type

    Responsibilities:
    - Validate input before any processing
    - Reject calls beyond max_concurrent_tasks immediately
    - Bound each attempt by the worker timeout without forcing preemption
    - Retry processing failures and timeouts with exponential backoff
    - Keep per-call metrics and report health
    """

    def __init__(self, definition: WorkerDefinition, worker_id: Optional[str] = None):
        self.definition = definition
        self.worker_type = definition.worker_type
        self.worker_id = worker_id or f"{definition.worker_type}-{uuid.uuid4().hex[:8]}"
        self.retry_policy = RetryPolicy(
            max_retries=definition.retry_attempts,
            initial_delay=definition.initial_delay_ms / 1000,
            max_delay=definition.max_delay_ms / 1000,
        )

        self.status = WorkerStatus.INACTIVE
        self.metrics = WorkerMetrics()
        self.active_tasks = 0
        self.created_at = datetime.utcnow()

        self._idle = asyncio.Event()
        self._idle.set()
        self._contexts: Set[WorkerContext] = set()
        self._abandoned: Set[asyncio.Future] = set()

        logger.info(f"Initialized worker runtime: {self.worker_id}")

    @property
    def max_concurrent_tasks(self) -> int:
        return self.definition.max_concurrent_tasks

    @property
    def timeout_ms(self) -> int:
        return self.definition.timeout_ms

    # Lifecycle

    async def start(self):
        if self.status == WorkerStatus.ACTIVE:
            return
        self.status = WorkerStatus.ACTIVE
        logger.info(f"Started worker: {self.worker_id}")

    async def stop(self, grace_period: float = 30.0) -> bool:
        """
        Stop accepting calls and wait for in-flight calls

        Returns True when every in-flight call finished within the grace
        period. Calls still running afterwards get their cancellation signal.
        """
        if self.status == WorkerStatus.INACTIVE:
            return True

        self.status = WorkerStatus.STOPPING
        drained = True
        if self.active_tasks:
            logger.info(f"Worker {self.worker_id} draining {self.active_tasks} in-flight calls")
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=grace_period)
            except asyncio.TimeoutError:
                drained = False
                logger.warning(f"Worker {self.worker_id} stopped with {self.active_tasks} calls still running")
                for context in list(self._contexts):
                    context.cancel()

        self.status = WorkerStatus.INACTIVE
        logger.info(f"Stopped worker: {self.worker_id}")
        return drained

    async def health_check(self) -> Dict[str, Any]:
        last = self.metrics.last_executed
        return {
            'healthy': self.status == WorkerStatus.ACTIVE,
            'status': self.status.value,
            'active_tasks': self.active_tasks,
            'abandoned_tasks': len(self._abandoned),
            'max_concurrent_tasks': self.max_concurrent_tasks,
            'last_executed': last.isoformat() if last else None,
            'seconds_since_last_execution': (datetime.utcnow() - last).total_seconds() if last else None,
        }

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of status, configuration and metrics"""
        return {
            'worker_id': self.worker_id,
            **self.definition.get_info(),
            'status': self.status.value,
            'active_tasks': self.active_tasks,
            'abandoned_tasks': len(self._abandoned),
            'metrics': self.metrics.model_dump(mode='json'),
        }

    def record_feedback(self, correct: bool):
        """Fold one accuracy observation into the running accuracy"""
        count = self.metrics.feedback_count
        self.metrics.accuracy = (self.metrics.accuracy * count + (1.0 if correct else 0.0)) / (count + 1)
        self.metrics.feedback_count = count + 1

    # Invocation

    def validate(self, worker_input: WorkerInput):
        """Raise WorkerValidationError if the input is unusable"""
        if not worker_input.task_id:
            raise WorkerValidationError(f"{self.worker_type}: task_id is required")
        if not isinstance(worker_input.data, dict):
            raise WorkerValidationError(f"{self.worker_type}: input data must be a mapping")

        if self.definition.validate_input is None:
            return
        try:
            self.definition.validate_input(worker_input.data)
        except WorkerValidationError:
            raise
        except (ValueError, TypeError, KeyError) as e:
            raise WorkerValidationError(
                f"{self.worker_type}: invalid input: {e}",
                context={'task_id': worker_input.task_id}
            )

    async def execute(self, worker_input: Union[WorkerInput, Dict[str, Any]], max_retries: Optional[int] = None) -> WorkerOutput:
        """
        Run one invocation

        Args:
            worker_input: Input for the worker
            max_retries: Overrides the worker's retry count for this call

        Raises:
            WorkerUnavailableError: worker not active
            WorkerValidationError: input rejected, never retried
            WorkerBusyError: at the concurrency limit
            WorkerTimeoutError / WorkerProcessingError: after retries are exhausted
        """
        if isinstance(worker_input, dict):
            worker_input = WorkerInput(**worker_input)

        started = time.monotonic()
        try:
            self._admit(worker_input)
        except AyurflowError:
            # Rejected calls still count as failed invocations
            self._record(success=False, started=started)
            raise

        retries = self.retry_policy.max_retries if max_retries is None else max_retries
        self.active_tasks += 1
        self._idle.clear()
        attempt = 0

        try:
            while True:
                self.metrics.total_attempts += 1
                try:
                    processed = await self.execute_with_timeout(worker_input, self.timeout_ms, attempt)
                    output = self._build_output(worker_input, processed, started, attempt)
                    output = self.post_process(output)
                    break
                except AyurflowError as e:
                    if not is_retryable_error(e) or attempt >= retries:
                        raise
                    delay = self.retry_policy.get_delay(attempt)
                    logger.warning(
                        f"{self.worker_type} attempt {attempt + 1}/{retries + 1} for {worker_input.task_id} "
                        f"failed: {e}; retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1
        except AyurflowError:
            self._record(success=False, started=started)
            raise
        else:
            self._record(success=True, started=started)
            return output
        finally:
            self.active_tasks -= 1
            if self.active_tasks == 0:
                self._idle.set()

    def _admit(self, worker_input: WorkerInput):
        if self.status != WorkerStatus.ACTIVE:
            raise WorkerUnavailableError(
                f"Worker {self.worker_type} is {self.status.value}",
                context={'task_id': worker_input.task_id}
            )

        self.validate(worker_input)

        if self.active_tasks >= self.max_concurrent_tasks:
            raise WorkerBusyError(
                f"Worker {self.worker_type} is at capacity ({self.max_concurrent_tasks})",
                context={'task_id': worker_input.task_id}
            )

    async def execute_with_timeout(self, worker_input: WorkerInput, timeout_ms: int, attempt: int = 0) -> ProcessingResult:
        """
        Run one processing attempt bounded by timeout_ms

        On expiry the attempt's cancellation signal is set and the still
        running call is left to finish in the background; its outcome is
        discarded. Abandoned calls no longer hold a concurrency slot, so a
        worker that ignores its signal can briefly run more than
        max_concurrent_tasks calls. They are reported as abandoned_tasks
        until they return.
        """
        context = WorkerContext(
            task_id=worker_input.task_id,
            data=worker_input.data,
            metadata=dict(worker_input.metadata),
            attempt=attempt,
        )
        self._contexts.add(context)
        future = asyncio.ensure_future(self._invoke(context))

        try:
            done, _ = await asyncio.wait({future}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            context.cancel()
            self._abandon(future)
            raise
        finally:
            self._contexts.discard(context)

        if not done:
            context.cancel()
            self._abandon(future)
            raise WorkerTimeoutError(
                f"{self.worker_type} timed out after {timeout_ms}ms",
                context={'task_id': worker_input.task_id, 'attempt': attempt}
            )

        return future.result()

    async def _invoke(self, context: WorkerContext) -> ProcessingResult:
        try:
            raw = await self.definition.process(context)
        except asyncio.CancelledError:
            if context.cancelled:
                raise WorkerProcessingError(f"{self.worker_type} invocation cancelled", retryable=False)
            raise
        except AyurflowError:
            raise
        except Exception as e:
            raise WorkerProcessingError(
                f"{self.worker_type} processing failed: {e}",
                context={'task_id': context.task_id, 'exception': type(e).__name__}
            )

        if isinstance(raw, ProcessingResult):
            return raw
        try:
            return ProcessingResult.model_validate(raw)
        except ValidationError as e:
            raise WorkerProcessingError(f"{self.worker_type} returned an invalid result: {e}")

    def _abandon(self, future: asyncio.Future):
        self._abandoned.add(future)
        future.add_done_callback(self._collect_abandoned)

    def _collect_abandoned(self, future: asyncio.Future):
        self._abandoned.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.debug(f"Discarded late failure from {self.worker_type}: {error}")
        else:
            logger.debug(f"Discarded late result from {self.worker_type}")

    def _build_output(self, worker_input: WorkerInput, processed: ProcessingResult, started: float, attempt: int) -> WorkerOutput:
        metadata = dict(processed.metadata)
        metadata.update({
            'worker_type': self.worker_type,
            'worker_id': self.worker_id,
            'attempts': attempt + 1,
        })
        return WorkerOutput(
            task_id=worker_input.task_id,
            result=processed.result,
            confidence=processed.confidence,
            metadata=metadata,
            execution_time=(time.monotonic() - started) * 1000,
        )

    def post_process(self, output: WorkerOutput) -> WorkerOutput:
        if self.definition.post_process is None:
            return output
        try:
            processed = self.definition.post_process(output)
        except AyurflowError:
            raise
        except Exception as e:
            raise WorkerProcessingError(f"{self.worker_type} post-processing failed: {e}")
        return processed if processed is not None else output

    def _record(self, success: bool, started: float):
        self.metrics.total_tasks += 1
        self.metrics.last_executed = datetime.utcnow()
        if success:
            elapsed = (time.monotonic() - started) * 1000
            count = self.metrics.successful_tasks
            self.metrics.average_execution_time = (self.metrics.average_execution_time * count + elapsed) / (count + 1)
            self.metrics.successful_tasks = count + 1
        else:
            self.metrics.failed_tasks += 1

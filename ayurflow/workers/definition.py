"""
Worker definitions

A worker is declared with the @worker decorator on an async processing
function. Validation and post-processing hooks attach to the resulting
definition:

    @worker("literature", capabilities=["literature_search"], timeout_ms=180000)
    async def literature(context):
        ...

    @literature.validator
    def validate_literature(data):
        if not data.get("query"):
            raise ValueError("query is required")
"""

import asyncio
import dataclasses
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.models import WorkerOutput

ProcessFunction = Callable[['WorkerContext'], Awaitable[Any]]
Validator = Callable[[Dict[str, Any]], None]
PostProcessor = Callable[[WorkerOutput], WorkerOutput]


class WorkerContext:
    """Per-attempt context handed to a processing function"""

    def __init__(self, task_id: str, data: Dict[str, Any], metadata: Dict[str, Any], attempt: int = 0):
        self.task_id = task_id
        self.data = data
        self.metadata = metadata
        self.attempt = attempt
        self._cancelled = asyncio.Event()

    @property
    def prerequisites(self) -> Dict[str, Any]:
        return self.data.get('prerequisites') or {}

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self):
        """Ask the processing function to stop at its next checkpoint"""
        self._cancelled.set()

    async def wait_cancelled(self):
        await self._cancelled.wait()

    def raise_if_cancelled(self):
        if self.cancelled:
            raise asyncio.CancelledError(f"Invocation for {self.task_id} was cancelled")

    async def checkpoint(self, delay: float = 0):
        """Yield to the loop and stop if cancellation was requested"""
        await asyncio.sleep(delay)
        self.raise_if_cancelled()


@dataclass
class WorkerDefinition:
    """Declared capabilities and defaults of one worker type"""
    worker_type: str
    process: ProcessFunction
    description: str = ""
    capabilities: List[str] = field(default_factory=list)
    max_concurrent_tasks: int = 5
    timeout_ms: int = 300000
    retry_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    validate_input: Optional[Validator] = None
    post_process: Optional[PostProcessor] = None

    def validator(self, func: Validator) -> Validator:
        """Attach an input validator"""
        self.validate_input = func
        return func

    def post_processor(self, func: PostProcessor) -> PostProcessor:
        """Attach an output post-processor"""
        self.post_process = func
        return func

    def with_overrides(self, **overrides) -> 'WorkerDefinition':
        """Copy of this definition with configuration overrides applied"""
        allowed = {'max_concurrent_tasks', 'timeout_ms', 'retry_attempts', 'initial_delay_ms', 'max_delay_ms'}
        unknown = set(overrides) - allowed
        if unknown:
            raise ValueError(f"Unknown worker settings: {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **overrides)

    def get_info(self) -> Dict[str, Any]:
        return {
            'worker_type': self.worker_type,
            'description': self.description,
            'capabilities': list(self.capabilities),
            'max_concurrent_tasks': self.max_concurrent_tasks,
            'timeout_ms': self.timeout_ms,
            'retry_attempts': self.retry_attempts,
        }


def worker(
    worker_type: str,
    capabilities: Optional[List[str]] = None,
    description: str = "",
    max_concurrent_tasks: int = 5,
    timeout_ms: int = 300000,
    retry_attempts: int = 3,
    initial_delay_ms: int = 1000,
    max_delay_ms: int = 30000
) -> Callable[[ProcessFunction], WorkerDefinition]:
    """
    Turn an async processing function into a WorkerDefinition

    Args:
        worker_type: Name used by workflow templates
        capabilities: Informational capability tags
        max_concurrent_tasks: In-flight invocation limit
        timeout_ms: Per-attempt timeout
        retry_attempts: Retries after the first attempt
        initial_delay_ms: First backoff delay, doubled on each retry
        max_delay_ms: Backoff cap
    """
    def decorator(func: ProcessFunction) -> WorkerDefinition:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"Worker '{worker_type}' processing function must be async")
        return WorkerDefinition(
            worker_type=worker_type,
            process=func,
            description=description or (func.__doc__ or "").strip().split("\n")[0],
            capabilities=list(capabilities or []),
            max_concurrent_tasks=max_concurrent_tasks,
            timeout_ms=timeout_ms,
            retry_attempts=retry_attempts,
            initial_delay_ms=initial_delay_ms,
            max_delay_ms=max_delay_ms,
        )

    return decorator


__all__ = ['WorkerContext', 'WorkerDefinition', 'worker']

"""
Worker registry

Fixed lookup of worker type to WorkerRuntime, built once at startup.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.errors import ConfigurationError, ErrorCode
from .definition import WorkerDefinition
from .runtime import WorkerRuntime

logger = logging.getLogger(__name__)


class WorkerRegistry:
    """Maps worker types to their runtimes"""

    def __init__(self):
        self._workers: Dict[str, WorkerRuntime] = {}

    @classmethod
    def from_definitions(
        cls,
        definitions: Iterable[WorkerDefinition],
        overrides: Optional[Mapping[str, Dict[str, Any]]] = None
    ) -> 'WorkerRegistry':
        """Build a registry, applying per-type configuration overrides"""
        registry = cls()
        overrides = overrides or {}
        for definition in definitions:
            settings = overrides.get(definition.worker_type) or {}
            if settings:
                definition = definition.with_overrides(**settings)
            registry.register(WorkerRuntime(definition))
        unused = set(overrides) - set(registry.worker_types())
        if unused:
            logger.warning(f"Configuration for unknown worker types ignored: {', '.join(sorted(unused))}")
        return registry

    def register(self, runtime: WorkerRuntime):
        if runtime.worker_type in self._workers:
            raise ConfigurationError(
                f"Worker type already registered: {runtime.worker_type}",
                code=ErrorCode.CONFIGURATION_INVALID
            )
        self._workers[runtime.worker_type] = runtime
        logger.debug(f"Registered worker {runtime.worker_id} for type {runtime.worker_type}")

    def get(self, worker_type: str) -> WorkerRuntime:
        runtime = self._workers.get(worker_type)
        if runtime is None:
            raise ConfigurationError(
                f"No worker registered for type: {worker_type}",
                code=ErrorCode.UNKNOWN_WORKER_TYPE
            )
        return runtime

    def require(self, worker_types: Iterable[str]):
        """Raise ConfigurationError if any of the worker types is missing"""
        missing = sorted(set(worker_types) - set(self._workers))
        if missing:
            raise ConfigurationError(
                f"No workers registered for: {', '.join(missing)}",
                code=ErrorCode.UNKNOWN_WORKER_TYPE
            )

    def worker_types(self) -> List[str]:
        return list(self._workers)

    def runtimes(self) -> List[WorkerRuntime]:
        return list(self._workers.values())

    def __contains__(self, worker_type: str) -> bool:
        return worker_type in self._workers

    def __len__(self) -> int:
        return len(self._workers)

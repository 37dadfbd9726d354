"""
Workers for ayurflow
"""

from typing import List

from .definition import WorkerContext, WorkerDefinition, worker
from .runtime import RetryPolicy, WorkerRuntime
from .registry import WorkerRegistry
from .literature import literature_worker
from .compound import compound_worker
from .crossref import crossref_worker


def builtin_definitions() -> List[WorkerDefinition]:
    """The bundled literature, compound and crossref workers"""
    return [literature_worker, compound_worker, crossref_worker]


__all__ = [
    'WorkerContext',
    'WorkerDefinition',
    'worker',
    'RetryPolicy',
    'WorkerRuntime',
    'WorkerRegistry',
    'builtin_definitions',
    'literature_worker',
    'compound_worker',
    'crossref_worker',
]

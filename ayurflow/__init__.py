"""
ayurflow - research request orchestration

Decomposes research requests into workflows of specialised workers,
executes them under bounded concurrency with timeouts and retries, and
synthesizes the partial results into one confidence-scored answer.
"""

from .base.config import OrchestratorConfig, load_config, setup_logging
from .base.events import EventBus, EventType, OrchestrationEvent
from .coordinator import Coordinator
from .core.errors import AyurflowError, ConfigurationError, CoordinatorClosedError
from .core.models import (
    CoordinatedTask,
    SynthesizedResult,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    WorkerOutput,
)
from .workers import WorkerContext, WorkerDefinition, worker

__version__ = "0.1.0"

__all__ = [
    'Coordinator',
    'OrchestratorConfig',
    'load_config',
    'setup_logging',
    'EventBus',
    'EventType',
    'OrchestrationEvent',
    'AyurflowError',
    'ConfigurationError',
    'CoordinatorClosedError',
    'CoordinatedTask',
    'SynthesizedResult',
    'TaskCategory',
    'TaskPriority',
    'TaskStatus',
    'WorkerOutput',
    'WorkerContext',
    'WorkerDefinition',
    'worker',
]

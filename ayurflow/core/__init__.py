"""
Core models, errors and persistence for ayurflow
"""

from .errors import (
    AyurflowError,
    ErrorCode,
    ConfigurationError,
    WorkerValidationError,
    WorkerUnavailableError,
    WorkerBusyError,
    WorkerTimeoutError,
    WorkerProcessingError,
    WorkflowAbortError,
    InvalidTransitionError,
    CoordinatorClosedError,
    is_retryable_error,
)
from .models import (
    TaskCategory,
    TaskPriority,
    TaskStatus,
    WorkerStatus,
    WorkflowStep,
    WorkerInput,
    WorkerOutput,
    ProcessingResult,
    WorkerMetrics,
    StepGap,
    Finding,
    Evidence,
    Recommendation,
    Conflict,
    ConflictSeverity,
    SynthesizedResult,
    CoordinatedTask,
)

__all__ = [
    'AyurflowError',
    'ErrorCode',
    'ConfigurationError',
    'WorkerValidationError',
    'WorkerUnavailableError',
    'WorkerBusyError',
    'WorkerTimeoutError',
    'WorkerProcessingError',
    'WorkflowAbortError',
    'InvalidTransitionError',
    'CoordinatorClosedError',
    'is_retryable_error',
    'TaskCategory',
    'TaskPriority',
    'TaskStatus',
    'WorkerStatus',
    'WorkflowStep',
    'WorkerInput',
    'WorkerOutput',
    'ProcessingResult',
    'WorkerMetrics',
    'StepGap',
    'Finding',
    'Evidence',
    'Recommendation',
    'Conflict',
    'ConflictSeverity',
    'SynthesizedResult',
    'CoordinatedTask',
]

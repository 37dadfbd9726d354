"""
Error definitions for ayurflow

Every failure raised inside the orchestration engine derives from
AyurflowError and carries a stable error code, a retryable flag and
free-form context for logging.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes used across ayurflow"""

    # Configuration errors (1000-1999)
    CONFIGURATION_INVALID = "AF1001"
    UNKNOWN_CATEGORY = "AF1002"
    TEMPLATE_INVALID = "AF1003"
    CIRCULAR_DEPENDENCY = "AF1004"
    UNKNOWN_WORKER_TYPE = "AF1005"

    # Worker errors (2000-2999)
    WORKER_VALIDATION_FAILED = "AF2001"
    WORKER_TIMEOUT = "AF2002"
    WORKER_PROCESSING_FAILED = "AF2003"
    WORKER_BUSY = "AF2004"
    WORKER_UNAVAILABLE = "AF2005"

    # Workflow errors (3000-3999)
    WORKFLOW_ABORTED = "AF3001"
    INVALID_TRANSITION = "AF3002"

    # Coordinator errors (4000-4999)
    COORDINATOR_CLOSED = "AF4001"
    TASK_NOT_FOUND = "AF4002"


class AyurflowError(Exception):
    """Base class for all ayurflow errors"""

    default_code = ErrorCode.CONFIGURATION_INVALID
    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        retryable: Optional[bool] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if retryable is not None:
            self.retryable = retryable
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error_type': type(self).__name__,
            'code': self.code.value,
            'message': self.message,
            'retryable': self.retryable,
            'context': self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class ConfigurationError(AyurflowError):
    """Unknown category, malformed template or invalid settings"""
    default_code = ErrorCode.CONFIGURATION_INVALID


class WorkerValidationError(AyurflowError):
    """Worker input rejected before processing; never retried"""
    default_code = ErrorCode.WORKER_VALIDATION_FAILED


class WorkerUnavailableError(AyurflowError):
    """Worker is not in the active state"""
    default_code = ErrorCode.WORKER_UNAVAILABLE


class WorkerBusyError(AyurflowError):
    """Worker is at its concurrency limit"""
    default_code = ErrorCode.WORKER_BUSY


class WorkerTimeoutError(AyurflowError):
    """A processing attempt exceeded the worker timeout"""
    default_code = ErrorCode.WORKER_TIMEOUT
    retryable = True


class WorkerProcessingError(AyurflowError):
    """The processing function raised or returned an invalid result"""
    default_code = ErrorCode.WORKER_PROCESSING_FAILED
    retryable = True


class WorkflowAbortError(AyurflowError):
    """A required step failed and the owning task must fail"""
    default_code = ErrorCode.WORKFLOW_ABORTED

    def __init__(self, step_id: str, cause: BaseException, **kwargs):
        self.step_id = step_id
        self.cause = cause
        context = kwargs.pop('context', None) or {}
        context.setdefault('step_id', step_id)
        super().__init__(f"Required step '{step_id}' failed: {cause}", context=context, **kwargs)


class InvalidTransitionError(AyurflowError):
    """Task status change that violates the monotonic lifecycle"""
    default_code = ErrorCode.INVALID_TRANSITION


class CoordinatorClosedError(AyurflowError):
    """Submission attempted after shutdown began"""
    default_code = ErrorCode.COORDINATOR_CLOSED


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether a failed worker attempt may be retried"""
    if isinstance(error, AyurflowError):
        return error.retryable
    # Unexpected exceptions are wrapped as processing failures by the runtime
    return False

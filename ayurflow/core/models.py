"""
Core data model for ayurflow

Pydantic models for coordinated tasks, workflow steps, worker input and
output, worker metrics and the synthesized result.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set
from pydantic import BaseModel, Field
import uuid

from .errors import InvalidTransitionError, ConfigurationError, ErrorCode


class TaskCategory(Enum):
    """Research request categories"""
    RESEARCH = "research"
    DISCOVERY = "discovery"
    LITERATURE_REVIEW = "literature-review"
    CROSS_VALIDATION = "cross-validation"

    # Legacy spellings used by older clients
    @classmethod
    def _missing_(cls, value):
        legacy_map = {
            "ayurveda_research": cls.RESEARCH,
            "ayurveda-research": cls.RESEARCH,
            "compound_discovery": cls.DISCOVERY,
            "compound-discovery": cls.DISCOVERY,
            "literature_review": cls.LITERATURE_REVIEW,
            "cross_validation": cls.CROSS_VALIDATION,
        }
        if isinstance(value, str):
            return legacy_map.get(value.lower())
        return None


class TaskPriority(Enum):
    """Task priority levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}


class TaskStatus(Enum):
    """Coordinated task lifecycle"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


ALLOWED_TRANSITIONS: Dict[TaskStatus, Set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
    TaskStatus.CANCELLED: set(),
}


class WorkerStatus(Enum):
    """Worker lifecycle states"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    STOPPING = "stopping"
    TRAINING = "training"
    ERROR = "error"
    MAINTENANCE = "maintenance"


def parse_category(value: Any) -> TaskCategory:
    """Coerce a category name, raising ConfigurationError for unknown ones"""
    if isinstance(value, TaskCategory):
        return value
    try:
        return TaskCategory(value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown task category: {value!r}",
            code=ErrorCode.UNKNOWN_CATEGORY,
            context={'category': value}
        )


def parse_priority(value: Any) -> TaskPriority:
    if isinstance(value, TaskPriority):
        return value
    try:
        return TaskPriority(str(value).lower())
    except ValueError:
        raise ConfigurationError(f"Unknown task priority: {value!r}")


class WorkflowStep(BaseModel):
    """One worker invocation inside a workflow"""
    step_id: str
    worker_type: str
    input: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list)
    parallel: bool = False
    optional: bool = False
    max_retries: Optional[int] = Field(default=None, ge=0)


class WorkerInput(BaseModel):
    """Input handed to a worker runtime"""
    task_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProcessingResult(BaseModel):
    """Return value of a worker processing function"""
    result: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkerOutput(BaseModel):
    """Output of one successfully completed step"""
    task_id: str
    result: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    execution_time: float = 0.0  # milliseconds

    @property
    def worker_type(self) -> Optional[str]:
        value = self.metadata.get('worker_type')
        return value if isinstance(value, str) else None


class WorkerMetrics(BaseModel):
    """Running statistics for one worker"""
    total_tasks: int = 0
    successful_tasks: int = 0
    failed_tasks: int = 0
    total_attempts: int = 0
    average_execution_time: float = 0.0
    accuracy: float = 0.0
    feedback_count: int = 0
    last_executed: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.total_tasks == 0:
            return 0.0
        return self.successful_tasks / self.total_tasks


class StepGap(BaseModel):
    """An optional step that produced no output"""
    step_id: str
    worker_type: str
    error: str


class Finding(BaseModel):
    statement: str
    confidence: float = Field(ge=0.0, le=1.0)
    source_step: Optional[str] = None
    worker_type: Optional[str] = None


class Evidence(BaseModel):
    """Provenance record for one worker output"""
    source_step: str
    worker_type: Optional[str] = None
    evidence_type: str  # traditional, scientific, computational
    summary: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    strength: str = "moderate"


class Recommendation(BaseModel):
    category: str
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    supporting_evidence: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)


class ConflictSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Conflict(BaseModel):
    """Two outputs making opposing claims about the same subject"""
    sources: List[str]
    worker_types: List[Optional[str]] = Field(default_factory=list)
    entity: str
    attribute: str
    description: str
    severity: ConflictSeverity
    resolution: Optional[str] = None


class SynthesizedResult(BaseModel):
    """Merged answer produced from all step outputs"""
    primary_findings: List[Finding] = Field(default_factory=list)
    supporting_evidence: List[Evidence] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    conflicts: List[Conflict] = Field(default_factory=list)
    gaps: List[StepGap] = Field(default_factory=list)
    confidence: float = 0.0
    reliability_score: float = 0.0
    quality_score: float = 0.0
    workers_used: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def empty(cls, **metadata) -> 'SynthesizedResult':
        return cls(metadata=dict(metadata))


def generate_task_id() -> str:
    return f"coord-{uuid.uuid4().hex[:16]}"


class CoordinatedTask(BaseModel):
    """A research request and its execution state"""

    id: str = Field(default_factory=generate_task_id)
    category: TaskCategory
    priority: TaskPriority = TaskPriority.MEDIUM
    input: Dict[str, Any] = Field(default_factory=dict)
    required_workers: List[str] = Field(default_factory=list)
    workflow: List[WorkflowStep] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING

    # Execution state
    results: Dict[str, WorkerOutput] = Field(default_factory=dict)
    step_inputs: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    gaps: List[StepGap] = Field(default_factory=list)
    final_result: Optional[SynthesizedResult] = None
    error: Optional[str] = None

    # Timing
    submitted_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def transition(self, new_status: TaskStatus):
        """Move to a new status, enforcing the monotonic lifecycle"""
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Task {self.id}: cannot move from {self.status.value} to {new_status.value}",
                context={'task_id': self.id}
            )
        self.status = new_status
        now = datetime.utcnow()
        if new_status == TaskStatus.IN_PROGRESS:
            self.started_at = now
        elif new_status.is_terminal:
            self.completed_at = now

    def mark_completed(self, final_result: SynthesizedResult):
        self.transition(TaskStatus.COMPLETED)
        self.final_result = final_result

    def mark_failed(self, error: str):
        self.transition(TaskStatus.FAILED)
        self.error = error

    def mark_cancelled(self):
        self.transition(TaskStatus.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.workflow:
            if step.step_id == step_id:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CoordinatedTask':
        return cls.model_validate(data)

"""
Orchestration components for ayurflow
"""

from .task_queue import TaskQueue
from .planner import WorkflowPlanner, WorkflowTemplate, validate_workflow, resolve_placeholders
from .synthesizer import ResultSynthesizer
from .scheduler import Scheduler

__all__ = [
    'TaskQueue',
    'WorkflowPlanner',
    'WorkflowTemplate',
    'validate_workflow',
    'resolve_placeholders',
    'ResultSynthesizer',
    'Scheduler',
]

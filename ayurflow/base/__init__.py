"""
Configuration and event infrastructure for ayurflow
"""

from .config import OrchestratorConfig, WorkerConfig, SynthesisConfig, load_config, setup_logging
from .events import EventBus, EventType, OrchestrationEvent, LoggingSubscriber

__all__ = [
    'OrchestratorConfig',
    'WorkerConfig',
    'SynthesisConfig',
    'load_config',
    'setup_logging',
    'EventBus',
    'EventType',
    'OrchestrationEvent',
    'LoggingSubscriber',
]

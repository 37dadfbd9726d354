"""
Configuration management for ayurflow

Provides environment-based configuration with sensible defaults and
optional YAML configuration files.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..core.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path.home() / ".ayurflow" / "config.yaml"


@dataclass
class WorkerConfig:
    """Per-worker overrides; None keeps the worker's declared default"""
    max_concurrent_tasks: Optional[int] = None
    timeout_ms: Optional[int] = None
    retry_attempts: Optional[int] = None
    initial_delay_ms: Optional[int] = None
    max_delay_ms: Optional[int] = None

    def validate(self, worker_type: str) -> bool:
        for name in ('max_concurrent_tasks', 'timeout_ms'):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"workers.{worker_type}.{name} must be positive")
        for name in ('retry_attempts', 'initial_delay_ms', 'max_delay_ms'):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigurationError(f"workers.{worker_type}.{name} must be non-negative")
        return True

    def overrides(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass
class SynthesisConfig:
    """Tunable weights for result synthesis"""
    conflict_threshold: float = 1.0
    conflict_penalty: float = 0.1
    completeness_weight: float = 0.4
    confidence_weight: float = 0.6
    max_findings: int = 5
    high_severity_gap: float = 0.15
    medium_severity_gap: float = 0.35

    def validate(self) -> bool:
        if self.conflict_threshold < 0:
            raise ConfigurationError("synthesis.conflict_threshold must be non-negative")
        if not 0 <= self.conflict_penalty <= 1:
            raise ConfigurationError("synthesis.conflict_penalty must be within [0, 1]")
        if self.completeness_weight < 0 or self.confidence_weight < 0:
            raise ConfigurationError("synthesis weights must be non-negative")
        if self.max_findings <= 0:
            raise ConfigurationError("synthesis.max_findings must be positive")
        return True


@dataclass
class OrchestratorConfig:
    """Configuration for the coordinator and its components"""

    # Scheduling
    max_concurrent_tasks: int = 10
    shutdown_grace_period: float = 30.0

    # Workflow templates (None uses the bundled templates)
    templates_path: Optional[str] = None

    # Persistence
    persistence: str = "memory"  # memory or sqlite
    db_path: str = "./ayurflow.db"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    workers: Dict[str, WorkerConfig] = field(default_factory=dict)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)

    def __post_init__(self):
        """Load configuration from environment variables"""

        # Scheduling
        self.max_concurrent_tasks = int(os.getenv('AYURFLOW_MAX_CONCURRENT_TASKS', str(self.max_concurrent_tasks)))
        self.shutdown_grace_period = float(os.getenv('AYURFLOW_SHUTDOWN_GRACE', str(self.shutdown_grace_period)))

        # Templates
        self.templates_path = os.getenv('AYURFLOW_TEMPLATES', self.templates_path)

        # Persistence
        self.persistence = os.getenv('AYURFLOW_PERSISTENCE', self.persistence)
        self.db_path = os.getenv('AYURFLOW_DB_PATH', self.db_path)

        # Logging
        self.log_level = os.getenv('AYURFLOW_LOG_LEVEL', self.log_level)

        # Nested sections may arrive as plain dictionaries
        self.workers = {
            worker_type: cfg if isinstance(cfg, WorkerConfig) else WorkerConfig(**(cfg or {}))
            for worker_type, cfg in self.workers.items()
        }
        if isinstance(self.synthesis, dict):
            self.synthesis = SynthesisConfig(**self.synthesis)

    def worker_overrides(self, worker_type: str) -> Dict[str, Any]:
        cfg = self.workers.get(worker_type)
        return cfg.overrides() if cfg else {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            'max_concurrent_tasks': self.max_concurrent_tasks,
            'shutdown_grace_period': self.shutdown_grace_period,
            'templates_path': self.templates_path,
            'persistence': self.persistence,
            'db_path': self.db_path,
            'log_level': self.log_level,
            'workers': {name: cfg.overrides() for name, cfg in self.workers.items()},
            'synthesis': {f.name: getattr(self.synthesis, f.name) for f in fields(self.synthesis)},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrchestratorConfig':
        """Create configuration from dictionary"""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    def validate(self) -> bool:
        """Validate configuration"""
        if self.max_concurrent_tasks <= 0:
            raise ConfigurationError("max_concurrent_tasks must be positive")

        if self.shutdown_grace_period < 0:
            raise ConfigurationError("shutdown_grace_period must be non-negative")

        if self.persistence not in ('memory', 'sqlite'):
            raise ConfigurationError(f"Unknown persistence backend: {self.persistence}")

        if self.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(f"Invalid log level: {self.log_level}")

        for worker_type, cfg in self.workers.items():
            cfg.validate(worker_type)

        self.synthesis.validate()
        return True


def load_config(path: Optional[str] = None) -> OrchestratorConfig:
    """Load configuration from a YAML file

    A missing default file yields the default configuration; a missing
    explicitly requested file is an error.
    """
    config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        if path:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        return OrchestratorConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

    return OrchestratorConfig.from_dict(data)


def setup_logging(config: OrchestratorConfig):
    """Setup logging based on configuration"""

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format=config.log_format
    )

    # Set ayurflow loggers to debug in development
    if config.log_level.upper() == 'DEBUG':
        logging.getLogger('ayurflow').setLevel(logging.DEBUG)

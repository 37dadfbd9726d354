"""
Global pytest configuration and fixtures for ayurflow tests
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from ayurflow.base.config import OrchestratorConfig
from ayurflow.components.planner import WorkflowPlanner
from ayurflow.coordinator import Coordinator
from ayurflow.core.models import ProcessingResult
from ayurflow.workers.definition import WorkerContext, WorkerDefinition

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(Path(__file__).parent / 'test.log')
    ]
)

# Suppress noisy logs during testing
logging.getLogger('aiosqlite').setLevel(logging.WARNING)


class ScriptedWorker:
    """
    Fake worker whose behaviour is set per test

    Records every input it receives and the peak number of concurrent
    invocations. `failures` makes the first N attempts raise; `hang`
    makes attempts wait until cancelled.
    """

    def __init__(
        self,
        worker_type: str,
        delay: float = 0.0,
        confidence: float = 0.8,
        result: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        failures: int = 0,
        always_fail: bool = False,
        hang: bool = False
    ):
        self.worker_type = worker_type
        self.delay = delay
        self.confidence = confidence
        self.result = result if result is not None else {'summary': f"{worker_type} result"}
        self.metadata = metadata or {}
        self.failures = failures
        self.always_fail = always_fail
        self.hang = hang

        self.calls: List[Dict[str, Any]] = []
        self.attempts = 0
        self.active = 0
        self.peak = 0
        self.finished = 0
        self.started_at: List[float] = []

    async def __call__(self, context: WorkerContext) -> ProcessingResult:
        self.calls.append(context.data)
        self.started_at.append(time.monotonic())
        self.attempts += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.hang:
                await context.wait_cancelled()
                return ProcessingResult(result={'late': True}, confidence=0.1)
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.always_fail or self.attempts <= self.failures:
                raise RuntimeError(f"{self.worker_type} exploded")
            return ProcessingResult(result=dict(self.result), confidence=self.confidence, metadata=dict(self.metadata))
        finally:
            self.active -= 1
            self.finished += 1

    def definition(self, **settings) -> WorkerDefinition:
        defaults = dict(max_concurrent_tasks=5, timeout_ms=2000, retry_attempts=0, initial_delay_ms=1, max_delay_ms=10)
        defaults.update(settings)
        return WorkerDefinition(worker_type=self.worker_type, process=self, **defaults)


def step(step_id: str, worker: str, dependencies=None, parallel=False, optional=False, **extra) -> Dict[str, Any]:
    data = {'id': step_id, 'worker': worker, 'parallel': parallel, 'optional': optional}
    if dependencies:
        data['dependencies'] = list(dependencies)
    data.update(extra)
    return data


def templates(**workflows) -> Dict[str, Any]:
    """Template document from category -> list of step dicts"""
    return {
        'workflows': {
            category.replace('_', '-'): {'steps': steps}
            for category, steps in workflows.items()
        }
    }


@pytest.fixture
def config() -> OrchestratorConfig:
    return OrchestratorConfig(max_concurrent_tasks=2, shutdown_grace_period=1.0)


@pytest.fixture
async def make_coordinator(config):
    """Build coordinators around scripted workers; shuts them all down afterwards"""
    created: List[Coordinator] = []

    async def factory(definitions, template_doc=None, **config_overrides):
        for key, value in config_overrides.items():
            setattr(config, key, value)
        planner = WorkflowPlanner(templates=template_doc) if template_doc else None
        coordinator = Coordinator(config, workers=definitions, planner=planner)
        created.append(coordinator)
        await coordinator.start()
        return coordinator

    yield factory

    for coordinator in created:
        await coordinator.shutdown(grace_period=0.5)


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for test files"""
    return tmp_path


def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")

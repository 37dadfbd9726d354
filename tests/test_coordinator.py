"""
Tests for the Coordinator entry point
"""

import asyncio

import pytest

from ayurflow.base.config import OrchestratorConfig, WorkerConfig
from ayurflow.base.events import EventType
from ayurflow.coordinator import Coordinator
from ayurflow.core.errors import ConfigurationError, CoordinatorClosedError, ErrorCode
from ayurflow.core.models import TaskStatus

from conftest import ScriptedWorker


class TestSubmission:
    """Test submit_task validation"""

    async def test_unknown_category(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])

        with pytest.raises(ConfigurationError) as exc_info:
            coordinator.submit_task("astrology", {'query': 'x'})
        assert exc_info.value.code == ErrorCode.UNKNOWN_CATEGORY
        assert coordinator.list_tasks() == []

    async def test_missing_worker_type(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])

        with pytest.raises(ConfigurationError) as exc_info:
            coordinator.submit_task("research", {'query': 'x'})
        assert exc_info.value.code == ErrorCode.UNKNOWN_WORKER_TYPE

    async def test_unknown_priority(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])
        with pytest.raises(ConfigurationError):
            coordinator.submit_task("literature-review", {'query': 'x'}, priority="whenever")

    async def test_submitted_task_is_visible_immediately(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature", delay=0.02).definition()])

        task_id = coordinator.submit_task("literature_review", {'query': 'x'}, priority="HIGH")
        task = coordinator.get_task_status(task_id)

        assert task.id == task_id
        assert task.category.value == "literature-review"
        assert task.priority.value == "high"
        assert task.required_workers == ['literature']
        assert task.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)

        await coordinator.wait_for_task(task_id, timeout=2)

    async def test_input_is_copied(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])
        task_input = {'query': 'tulsi'}

        task_id = coordinator.submit_task("literature-review", task_input)
        task_input['query'] = 'changed'

        assert coordinator.get_task_status(task_id).input == {'query': 'tulsi'}
        await coordinator.wait_for_task(task_id, timeout=2)


class TestQueries:
    """Test task listing, workers and stats"""

    async def test_list_tasks_by_status(self, make_coordinator):
        literature = ScriptedWorker("literature")
        coordinator = await make_coordinator([literature.definition()])

        done = coordinator.submit_task("literature-review", {'query': 'x'})
        await coordinator.wait_for_task(done, timeout=2)

        assert [task.id for task in coordinator.list_tasks("completed")] == [done]
        assert coordinator.list_tasks(TaskStatus.FAILED) == []
        assert coordinator.list_active_tasks() == []

    async def test_worker_statuses(self, make_coordinator):
        coordinator = await make_coordinator([
            ScriptedWorker("literature").definition(max_concurrent_tasks=3),
            ScriptedWorker("compound").definition(),
        ])
        await coordinator.wait_for_task(coordinator.submit_task("literature-review", {'query': 'x'}), timeout=2)

        statuses = await coordinator.get_worker_statuses()

        assert set(statuses) == {'literature', 'compound'}
        assert statuses['literature']['max_concurrent_tasks'] == 3
        assert statuses['literature']['metrics']['total_tasks'] == 1
        assert statuses['literature']['health']['healthy'] is True
        assert statuses['compound']['metrics']['total_tasks'] == 0

    async def test_record_feedback(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])

        coordinator.record_feedback("literature", True)
        coordinator.record_feedback("literature", False)

        metrics = coordinator.registry.get("literature").metrics
        assert metrics.accuracy == pytest.approx(0.5)
        with pytest.raises(ConfigurationError):
            coordinator.record_feedback("oracle", True)

    async def test_stats(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])
        await coordinator.wait_for_task(coordinator.submit_task("literature-review", {'query': 'x'}), timeout=2)

        stats = coordinator.get_stats()
        assert stats['queue']['tasks_submitted'] == 1
        assert stats['scheduler']['tasks_completed'] == 1
        assert stats['active_tasks'] == 0
        assert stats['events']['events_emitted'] > 0

    async def test_worker_config_overrides_are_applied(self, make_coordinator):
        coordinator = await make_coordinator(
            [ScriptedWorker("literature").definition(timeout_ms=1000)],
            workers={'literature': WorkerConfig(timeout_ms=250, retry_attempts=4)},
        )

        runtime = coordinator.registry.get("literature")
        assert runtime.timeout_ms == 250
        assert runtime.retry_policy.max_retries == 4


class TestEvents:
    """Test lifecycle events"""

    async def test_task_lifecycle_events(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])
        seen = []
        coordinator.events.subscribe(lambda event: seen.append(event.event_type))

        await coordinator.wait_for_task(coordinator.submit_task("literature-review", {'query': 'x'}), timeout=2)

        assert seen == [
            EventType.TASK_SUBMITTED,
            EventType.TASK_STARTED,
            EventType.STEP_STARTED,
            EventType.STEP_COMPLETED,
            EventType.TASK_COMPLETED,
        ]

    async def test_failing_subscriber_does_not_break_tasks(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])

        def broken(event):
            raise RuntimeError("subscriber bug")

        coordinator.events.subscribe(broken)
        task = await coordinator.wait_for_task(coordinator.submit_task("literature-review", {'query': 'x'}), timeout=2)

        assert task.status == TaskStatus.COMPLETED
        assert coordinator.events.stats['subscriber_errors'] >= 4

    async def test_step_failure_events(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature", always_fail=True).definition()])
        failures = []
        coordinator.events.subscribe(
            lambda event: failures.append(event) if event.event_type == EventType.STEP_FAILED else None
        )

        task = await coordinator.wait_for_task(coordinator.submit_task("literature-review", {'query': 'x'}), timeout=2)

        assert task.status == TaskStatus.FAILED
        assert len(failures) == 1
        assert failures[0].task_id == task.id
        assert failures[0].data['step_id'] == 'comprehensive_search'


class TestShutdown:
    """Test shutdown ordering"""

    async def test_submit_after_shutdown_is_rejected(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])
        await coordinator.shutdown()

        with pytest.raises(CoordinatorClosedError):
            coordinator.submit_task("literature-review", {'query': 'x'})

    async def test_queued_tasks_cancelled_running_tasks_finish(self, make_coordinator):
        literature = ScriptedWorker("literature", delay=0.05)
        coordinator = await make_coordinator([literature.definition()], max_concurrent_tasks=1)

        running = coordinator.submit_task("literature-review", {'query': 'a'})
        await asyncio.sleep(0.01)
        queued = [coordinator.submit_task("literature-review", {'query': q}) for q in ('b', 'c')]

        await coordinator.shutdown(grace_period=1.0)

        assert coordinator.get_task_status(running).status == TaskStatus.COMPLETED
        for task_id in queued:
            task = coordinator.get_task_status(task_id)
            assert task.status == TaskStatus.CANCELLED
            assert task.started_at is None
        assert len(literature.calls) == 1

    async def test_running_tasks_cancelled_after_grace_period(self, make_coordinator):
        literature = ScriptedWorker("literature", hang=True)
        coordinator = await make_coordinator([literature.definition(timeout_ms=5000)])

        task_id = coordinator.submit_task("literature-review", {'query': 'a'})
        await asyncio.sleep(0.01)
        await coordinator.shutdown(grace_period=0.05)

        task = coordinator.get_task_status(task_id)
        assert task.status == TaskStatus.CANCELLED
        assert literature.finished == 1
        assert all(runtime.status.value == 'inactive' for runtime in coordinator.registry.runtimes())

    async def test_workers_stop_after_tasks(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])
        seen = []
        coordinator.events.subscribe(lambda event: seen.append(event.event_type))

        coordinator.submit_task("literature-review", {'query': 'a'})
        await asyncio.sleep(0.01)
        await coordinator.shutdown()

        assert seen[-1] == EventType.WORKER_STOPPED
        assert EventType.TASK_COMPLETED in seen

    async def test_shutdown_is_idempotent(self, make_coordinator):
        coordinator = await make_coordinator([ScriptedWorker("literature").definition()])
        await coordinator.shutdown()
        await coordinator.shutdown()

    async def test_context_manager(self):
        literature = ScriptedWorker("literature")
        config = OrchestratorConfig(max_concurrent_tasks=2, shutdown_grace_period=1.0)

        async with Coordinator(config, workers=[literature.definition()]) as coordinator:
            task = await coordinator.wait_for_task(coordinator.submit_task("literature-review", {'query': 'x'}), timeout=2)
            assert task.status == TaskStatus.COMPLETED

        with pytest.raises(CoordinatorClosedError):
            coordinator.submit_task("literature-review", {'query': 'x'})
        with pytest.raises(CoordinatorClosedError):
            await coordinator.start()

"""
Tests for the worker runtime contract
"""

import asyncio

import pytest

from ayurflow.core.errors import (
    WorkerBusyError,
    WorkerProcessingError,
    WorkerTimeoutError,
    WorkerUnavailableError,
    WorkerValidationError,
)
from ayurflow.core.models import ProcessingResult, WorkerInput, WorkerStatus
from ayurflow.workers.definition import WorkerDefinition, worker
from ayurflow.workers.runtime import RetryPolicy, WorkerRuntime

from conftest import ScriptedWorker


async def started(definition: WorkerDefinition) -> WorkerRuntime:
    runtime = WorkerRuntime(definition)
    await runtime.start()
    return runtime


def request(data=None) -> WorkerInput:
    return WorkerInput(task_id="coord-test/step", data=data or {})


class TestRetryPolicy:
    """Test backoff delays"""

    def test_exponential_delays(self):
        policy = RetryPolicy(max_retries=3, initial_delay=0.5, max_delay=10.0)
        assert [policy.get_delay(attempt) for attempt in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_delay_is_capped(self):
        policy = RetryPolicy(initial_delay=1.0, max_delay=3.0)
        assert policy.get_delay(5) == 3.0


class TestWorkerDecorator:
    """Test the @worker decorator"""

    def test_builds_definition(self):
        @worker("echo", capabilities=["echo"], max_concurrent_tasks=2, timeout_ms=100, retry_attempts=1)
        async def echo(context):
            """Echoes its input"""
            return ProcessingResult(result=dict(context.data), confidence=1.0)

        assert isinstance(echo, WorkerDefinition)
        assert echo.worker_type == "echo"
        assert echo.description == "Echoes its input"
        assert echo.max_concurrent_tasks == 2

    def test_rejects_sync_functions(self):
        with pytest.raises(TypeError):
            @worker("sync")
            def not_async(context):
                return {}

    def test_overrides(self):
        definition = ScriptedWorker("w").definition(timeout_ms=100)
        changed = definition.with_overrides(timeout_ms=500, retry_attempts=4)

        assert changed.timeout_ms == 500
        assert changed.retry_attempts == 4
        assert definition.timeout_ms == 100
        with pytest.raises(ValueError):
            definition.with_overrides(colour="blue")


class TestWorkerRuntime:
    """Test execute, timeout, retry, metrics and lifecycle"""

    async def test_successful_execution(self):
        fake = ScriptedWorker("literature", confidence=0.9, result={'summary': 'ok'})
        runtime = await started(fake.definition())

        output = await runtime.execute(request({'query': 'tulsi'}))

        assert output.task_id == "coord-test/step"
        assert output.result == {'summary': 'ok'}
        assert output.confidence == 0.9
        assert output.metadata['worker_type'] == "literature"
        assert output.metadata['attempts'] == 1
        assert output.execution_time >= 0
        assert runtime.metrics.total_tasks == 1
        assert runtime.metrics.successful_tasks == 1
        assert runtime.metrics.last_executed is not None

    async def test_dict_results_are_accepted(self):
        @worker("plain", retry_attempts=0)
        async def plain(context):
            return {'result': {'n': 1}, 'confidence': 0.5}

        runtime = await started(plain)
        output = await runtime.execute({'task_id': 't', 'data': {}})
        assert output.result == {'n': 1}

    async def test_invalid_confidence_is_a_processing_failure(self):
        @worker("broken", retry_attempts=0)
        async def broken(context):
            return {'result': {}, 'confidence': 1.5}

        runtime = await started(broken)
        with pytest.raises(WorkerProcessingError):
            await runtime.execute(request())

    async def test_validation_failure_is_not_retried(self):
        fake = ScriptedWorker("literature")
        definition = fake.definition(retry_attempts=3)

        @definition.validator
        def require_query(data):
            if not data.get('query'):
                raise ValueError("query is required")

        runtime = await started(definition)
        with pytest.raises(WorkerValidationError):
            await runtime.execute(request({}))

        assert fake.attempts == 0

    async def test_empty_task_id_fails_validation(self):
        runtime = await started(ScriptedWorker("w").definition())
        with pytest.raises(WorkerValidationError):
            await runtime.execute(WorkerInput(task_id="", data={}))

    async def test_retries_until_success(self):
        fake = ScriptedWorker("compound", failures=2)
        runtime = await started(fake.definition(retry_attempts=3))

        output = await runtime.execute(request())

        assert fake.attempts == 3
        assert output.metadata['attempts'] == 3
        assert runtime.metrics.total_tasks == 1
        assert runtime.metrics.successful_tasks == 1
        assert runtime.metrics.total_attempts == 3

    async def test_retry_exhaustion(self):
        fake = ScriptedWorker("compound", always_fail=True)
        runtime = await started(fake.definition(retry_attempts=2))

        with pytest.raises(WorkerProcessingError):
            await runtime.execute(request())

        assert fake.attempts == 3
        assert runtime.metrics.failed_tasks == 1
        assert runtime.metrics.successful_tasks == 0

    async def test_per_call_retry_override(self):
        fake = ScriptedWorker("crossref", always_fail=True)
        runtime = await started(fake.definition(retry_attempts=5))

        with pytest.raises(WorkerProcessingError):
            await runtime.execute(request(), max_retries=0)

        assert fake.attempts == 1

    async def test_timeout_signals_cancellation(self):
        fake = ScriptedWorker("literature", hang=True)
        runtime = await started(fake.definition(timeout_ms=20, retry_attempts=1))

        with pytest.raises(WorkerTimeoutError):
            await runtime.execute(request())

        assert fake.attempts == 2
        # Abandoned attempts observe their cancellation signal and finish
        await asyncio.sleep(0.01)
        assert fake.finished == 2
        assert runtime.metrics.failed_tasks == 1

    async def test_late_result_is_discarded(self):
        fake = ScriptedWorker("literature", delay=0.1)
        runtime = await started(fake.definition(timeout_ms=10))

        with pytest.raises(WorkerTimeoutError):
            await runtime.execute(request())

        await asyncio.sleep(0.15)
        assert fake.finished == 1
        assert runtime.metrics.successful_tasks == 0

    async def test_busy_worker_rejects_immediately(self):
        fake = ScriptedWorker("crossref", delay=0.05)
        runtime = await started(fake.definition(max_concurrent_tasks=1))

        first = asyncio.create_task(runtime.execute(request()))
        await asyncio.sleep(0)
        with pytest.raises(WorkerBusyError):
            await runtime.execute(request())

        await first
        assert fake.attempts == 1

    async def test_inactive_worker_is_unavailable(self):
        runtime = WorkerRuntime(ScriptedWorker("w").definition())
        with pytest.raises(WorkerUnavailableError):
            await runtime.execute(request())

    async def test_stop_waits_for_in_flight_calls(self):
        fake = ScriptedWorker("w", delay=0.05)
        runtime = await started(fake.definition())

        call = asyncio.create_task(runtime.execute(request()))
        await asyncio.sleep(0)
        drained = await runtime.stop(grace_period=1.0)

        assert drained is True
        assert call.done()
        assert runtime.status == WorkerStatus.INACTIVE
        with pytest.raises(WorkerUnavailableError):
            await runtime.execute(request())

    async def test_stop_after_grace_cancels_cooperatively(self):
        fake = ScriptedWorker("w", hang=True)
        runtime = await started(fake.definition(timeout_ms=5000))

        call = asyncio.create_task(runtime.execute(request()))
        await asyncio.sleep(0)
        drained = await runtime.stop(grace_period=0.01)

        assert drained is False
        await asyncio.wait_for(call, timeout=1.0)
        assert fake.finished == 1

    async def test_health_and_status(self):
        runtime = await started(ScriptedWorker("literature").definition())
        await runtime.execute(request())

        health = await runtime.health_check()
        assert health['healthy'] is True
        assert health['status'] == 'active'
        assert health['active_tasks'] == 0
        assert health['seconds_since_last_execution'] >= 0

        status = runtime.get_status()
        assert status['worker_type'] == 'literature'
        assert status['metrics']['total_tasks'] == 1

    async def test_feedback_updates_accuracy_only(self):
        runtime = await started(ScriptedWorker("w").definition())
        await runtime.execute(request())

        runtime.record_feedback(True)
        runtime.record_feedback(False)
        runtime.record_feedback(True)

        assert runtime.metrics.feedback_count == 3
        assert runtime.metrics.accuracy == pytest.approx(2 / 3)
        assert runtime.metrics.total_tasks == 1

    async def test_post_processor(self):
        fake = ScriptedWorker("w", result={'summary': 'raw'})
        definition = fake.definition()

        @definition.post_processor
        def tag(output):
            output.result['tagged'] = True
            return output

        runtime = await started(definition)
        output = await runtime.execute(request())
        assert output.result == {'summary': 'raw', 'tagged': True}


class TestRejectedCalls:
    """Calls refused before processing still show up in the metrics"""

    async def test_validation_rejection_counts_as_failure(self):
        definition = ScriptedWorker("literature").definition()

        @definition.validator
        def require_query(data):
            if not data.get('query'):
                raise ValueError("query is required")

        runtime = await started(definition)
        with pytest.raises(WorkerValidationError):
            await runtime.execute(request({}))

        assert runtime.metrics.total_tasks == 1
        assert runtime.metrics.failed_tasks == 1
        assert runtime.metrics.total_attempts == 0
        assert runtime.metrics.last_executed is not None

    async def test_busy_rejection_counts_as_failure(self):
        fake = ScriptedWorker("crossref", delay=0.05)
        runtime = await started(fake.definition(max_concurrent_tasks=1))

        first = asyncio.create_task(runtime.execute(request()))
        await asyncio.sleep(0)
        with pytest.raises(WorkerBusyError):
            await runtime.execute(request())
        await first

        assert runtime.metrics.total_tasks == 2
        assert runtime.metrics.successful_tasks == 1
        assert runtime.metrics.failed_tasks == 1

    async def test_unavailable_rejection_counts_as_failure(self):
        runtime = WorkerRuntime(ScriptedWorker("w").definition())
        with pytest.raises(WorkerUnavailableError):
            await runtime.execute(request())

        assert runtime.metrics.total_tasks == 1
        assert runtime.metrics.failed_tasks == 1
        assert runtime.metrics.success_rate == 0.0


class TestAbandonedAttempts:
    async def test_timed_out_attempts_are_reported_until_they_return(self):
        fake = ScriptedWorker("literature", delay=0.1)
        runtime = await started(fake.definition(timeout_ms=10, max_concurrent_tasks=1))

        with pytest.raises(WorkerTimeoutError):
            await runtime.execute(request())

        health = await runtime.health_check()
        assert health['active_tasks'] == 0
        assert health['abandoned_tasks'] == 1
        assert runtime.get_status()['abandoned_tasks'] == 1

        await asyncio.sleep(0.15)
        assert fake.finished == 1
        assert (await runtime.health_check())['abandoned_tasks'] == 0

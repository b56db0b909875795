"""Tests for the job worker."""

import asyncio

import pytest

from nodeflow.core.execution_engine import WorkflowExecutionEngine
from nodeflow.models.execution import Execution, ExecutionStatus, TriggerType
from nodeflow.models.job import JobStatus, JobTriggerType
from nodeflow.services.queue_service import ExecutionQueue
from nodeflow.worker import JobWorker

from conftest import FAST_RETRY, TEST_USER_ID


def fast_engine(session):
    return WorkflowExecutionEngine(session, retry_policy=FAST_RETRY)


class ExplodingEngine:
    """Engine stand-in whose execute always raises."""

    def __init__(self, session) -> None:
        pass

    async def execute(self, *args, **kwargs):
        raise RuntimeError("engine crashed")


async def enqueue(session_maker, workflow_id: str, payload=None) -> str:
    async with session_maker() as session:
        return await ExecutionQueue(session).enqueue_job(
            workflow_id, TEST_USER_ID, JobTriggerType.WEBHOOK, webhook_data=payload
        )


async def get_job(session_maker, job_id: str):
    async with session_maker() as session:
        return await ExecutionQueue(session).get_job(job_id)


class TestJobWorker:
    """Tests for JobWorker."""

    @pytest.mark.asyncio
    async def test_empty_queue_processes_nothing(self, session_maker):
        worker = JobWorker(session_maker, fast_engine, poll_interval=0.01)

        assert await worker.process_pending_jobs() == 0

    @pytest.mark.asyncio
    async def test_successful_job_is_completed(self, session_maker, make_workflow):
        workflow_id = await make_workflow([{"id": "w", "type": "WEBHOOK_TRIGGER"}])
        job_id = await enqueue(session_maker, workflow_id, {"event": "push"})
        worker = JobWorker(session_maker, fast_engine, poll_interval=0.01)

        assert await worker.process_pending_jobs() == 1

        job = await get_job(session_maker, job_id)
        assert job.status == JobStatus.COMPLETED
        async with session_maker() as session:
            execution = await session.get(Execution, job.execution_id)
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.trigger_type == TriggerType.WEBHOOK
        assert execution.get_trigger_data() == {"event": "push"}

    @pytest.mark.asyncio
    async def test_failed_execution_fails_job(self, session_maker, make_workflow):
        workflow_id = await make_workflow(
            [
                {"id": "w", "type": "WEBHOOK_TRIGGER"},
                {"id": "j", "type": "JSON_PARSE", "data": {"operation": "transform", "transformationRules": "[1]"}},
            ],
            [{"source": "w", "target": "j"}],
        )
        job_id = await enqueue(session_maker, workflow_id)
        worker = JobWorker(session_maker, fast_engine, poll_interval=0.01)

        await worker.process_pending_jobs()

        job = await get_job(session_maker, job_id)
        assert job.status == JobStatus.FAILED
        assert job.execution_id is not None
        assert job.error.startswith("JSON node (j):")

    @pytest.mark.asyncio
    async def test_engine_exception_fails_job(self, session_maker, make_workflow):
        workflow_id = await make_workflow([{"id": "w", "type": "WEBHOOK_TRIGGER"}])
        job_id = await enqueue(session_maker, workflow_id)
        worker = JobWorker(session_maker, ExplodingEngine, poll_interval=0.01)

        await worker.process_pending_jobs()

        job = await get_job(session_maker, job_id)
        assert job.status == JobStatus.FAILED
        assert job.error == "engine crashed"
        assert job.execution_id is None

    @pytest.mark.asyncio
    async def test_drains_all_due_jobs(self, session_maker, make_workflow):
        workflow_id = await make_workflow([{"id": "w", "type": "WEBHOOK_TRIGGER"}])
        job_ids = [await enqueue(session_maker, workflow_id, {"n": n}) for n in range(3)]
        worker = JobWorker(session_maker, fast_engine, poll_interval=0.01)

        assert await worker.process_pending_jobs() == 3
        for job_id in job_ids:
            assert (await get_job(session_maker, job_id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_background_loop_picks_up_jobs(self, session_maker, make_workflow):
        workflow_id = await make_workflow([{"id": "w", "type": "WEBHOOK_TRIGGER"}])
        worker = JobWorker(session_maker, fast_engine, poll_interval=0.01)
        worker.start()
        try:
            assert worker.running
            job_id = await enqueue(session_maker, workflow_id)

            for _ in range(200):
                if (await get_job(session_maker, job_id)).status == JobStatus.COMPLETED:
                    break
                await asyncio.sleep(0.02)
        finally:
            await worker.stop()

        assert not worker.running
        assert (await get_job(session_maker, job_id)).status == JobStatus.COMPLETED

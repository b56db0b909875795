"""Job worker.

Polls the execution job queue and runs claimed jobs through the execution
engine, one at a time. Runs inside the API lifespan when ``WORKER_ENABLED``
is set, or standalone:

    python -m nodeflow.worker [--once] [--interval SECONDS]
"""

import asyncio
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nodeflow.config import get_settings
from nodeflow.core.execution_engine import WorkflowExecutionEngine
from nodeflow.models.execution import ExecutionStatus, TriggerType
from nodeflow.models.job import ExecutionJob
from nodeflow.services.queue_service import ExecutionQueue

logger = structlog.get_logger()

EngineFactory = Callable[[AsyncSession], WorkflowExecutionEngine]


class JobWorker:
    """Dispatcher draining the execution job queue.

    Example usage:
        worker = JobWorker(get_session_maker())
        worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        engine_factory: EngineFactory | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._engine_factory = engine_factory or WorkflowExecutionEngine
        self._poll_interval = (
            poll_interval if poll_interval is not None else get_settings().queue_poll_interval
        )
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the poll loop as a background task."""
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self.run_forever(), name="nodeflow-job-worker")
        logger.info("job_worker_started", poll_interval=self._poll_interval)

    async def stop(self) -> None:
        """Stop polling; a job already running finishes first."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("job_worker_stopped")

    async def run_forever(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.process_pending_jobs()
            except Exception:
                logger.exception("job_worker_tick_failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass

    async def process_pending_jobs(self) -> int:
        """Drain every due job.

        Returns:
            Number of jobs processed
        """
        async with self._session_maker() as session:
            queue = ExecutionQueue(session)
            if await queue.get_pending_jobs_count() == 0:
                return 0

        processed = 0
        while not self._stopping.is_set():
            async with self._session_maker() as session:
                job = await ExecutionQueue(session).dequeue_job()
            if job is None:
                break
            await self.process_job(job)
            processed += 1

        if processed:
            logger.info("job_queue_drained", processed=processed)
        return processed

    async def process_job(self, job: ExecutionJob) -> None:
        """Run one claimed job and record its outcome."""
        log = logger.bind(job_id=job.id, workflow_id=job.workflow_id)
        execution_id = None
        error = None

        async with self._session_maker() as session:
            engine = self._engine_factory(session)
            try:
                execution = await engine.execute(
                    job.workflow_id,
                    job.user_id,
                    trigger_type=TriggerType(job.trigger_type.value),
                    trigger_data=job.get_webhook_data(),
                )
                execution_id = execution.id
                if execution.status == ExecutionStatus.FAILED:
                    error = execution.error or "Execution failed"
            except Exception as e:
                log.exception("job_execution_error")
                error = str(e) or type(e).__name__

        async with self._session_maker() as session:
            queue = ExecutionQueue(session)
            if error is None:
                await queue.mark_job_completed(job.id, execution_id)
            else:
                await queue.mark_job_failed(job.id, error, execution_id)


async def main() -> None:
    import argparse

    from nodeflow.core.database import dispose_engine, get_session_maker
    from nodeflow.core.logging import configure_logging

    parser = argparse.ArgumentParser(description="Run the nodeflow job worker")
    parser.add_argument("--once", action="store_true", help="Drain the queue once and exit")
    parser.add_argument("--interval", type=float, default=None, help="Poll interval in seconds")
    args = parser.parse_args()

    configure_logging(get_settings())
    worker = JobWorker(get_session_maker(), poll_interval=args.interval)
    try:
        if args.once:
            await worker.process_pending_jobs()
        else:
            await worker.run_forever()
    finally:
        await dispose_engine()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

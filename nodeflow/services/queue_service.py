"""Execution job queue.

Durable FIFO of workflow runs requested by webhooks and schedules. Claiming
a job is a compare-and-set on its status, so concurrent dispatchers never
receive the same job.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.models.job import ExecutionJob, JobStatus, JobTriggerType

logger = structlog.get_logger()

# Candidates examined per dequeue before giving up on a contended queue
DEQUEUE_CANDIDATES = 10


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Convert to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class QueueError(Exception):
    """Error in queue operations."""

    pass


class JobNotFoundError(QueueError):
    """Job not found."""

    pass


class ExecutionQueue:
    """Database-backed execution job queue.

    Example usage:
        queue = ExecutionQueue(session)
        job_id = await queue.enqueue_job("wf-1", "user-123", JobTriggerType.WEBHOOK,
                                         webhook_data={"event": "push"})

        job = await queue.dequeue_job()
        if job is not None:
            ...
            await queue.mark_job_completed(job.id, execution_id)
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def enqueue_job(
        self,
        workflow_id: str,
        user_id: str,
        trigger_type: JobTriggerType,
        scheduled_at: datetime | None = None,
        webhook_data: Any = None,
    ) -> str:
        """Insert a PENDING job and return its id."""
        if scheduled_at is not None:
            scheduled_at = as_utc(scheduled_at)
        job = ExecutionJob(
            workflow_id=workflow_id,
            user_id=user_id,
            trigger_type=trigger_type,
            scheduled_at=scheduled_at,
        )
        job.set_webhook_data(webhook_data)

        self._session.add(job)
        await self._session.commit()

        logger.info(
            "job_enqueued",
            job_id=job.id,
            workflow_id=workflow_id,
            trigger_type=trigger_type.value,
            scheduled_at=scheduled_at.isoformat() if scheduled_at else None,
        )
        return job.id

    async def dequeue_job(self) -> ExecutionJob | None:
        """Claim the oldest due PENDING job.

        Jobs are ordered by ``scheduled_at`` (unscheduled first) then
        ``created_at``. The claim flips PENDING to PROCESSING only if the job
        is still PENDING; a lost race moves on to the next candidate.

        Returns:
            The claimed job, or None if nothing is due
        """
        now = utc_now()
        query = (
            select(ExecutionJob.id)
            .where(ExecutionJob.status == JobStatus.PENDING)
            .where(or_(ExecutionJob.scheduled_at.is_(None), ExecutionJob.scheduled_at <= now))
            .order_by(
                ExecutionJob.scheduled_at.asc().nulls_first(),
                ExecutionJob.created_at.asc(),
            )
            .limit(DEQUEUE_CANDIDATES)
        )
        candidates = (await self._session.execute(query)).scalars().all()

        for job_id in candidates:
            claimed = await self._session.execute(
                update(ExecutionJob)
                .where(ExecutionJob.id == job_id)
                .where(ExecutionJob.status == JobStatus.PENDING)
                .values(status=JobStatus.PROCESSING, started_at=now)
                .execution_options(synchronize_session=False)
            )
            await self._session.commit()

            if claimed.rowcount == 1:
                job = await self._session.get(ExecutionJob, job_id, populate_existing=True)
                logger.info("job_dequeued", job_id=job_id, workflow_id=job.workflow_id)
                return job

            logger.debug("job_claim_lost", job_id=job_id)

        return None

    async def mark_job_completed(self, job_id: str, execution_id: str | None = None) -> None:
        """Mark a job COMPLETED.

        Raises:
            JobNotFoundError: If the job doesn't exist
        """
        job = await self.get_job(job_id)
        job.status = JobStatus.COMPLETED
        job.execution_id = execution_id or job.execution_id
        job.completed_at = utc_now()
        await self._session.commit()

        logger.info("job_completed", job_id=job_id, execution_id=execution_id)

    async def mark_job_failed(
        self,
        job_id: str,
        error: str,
        execution_id: str | None = None,
    ) -> None:
        """Mark a job FAILED with the error that stopped it.

        Raises:
            JobNotFoundError: If the job doesn't exist
        """
        job = await self.get_job(job_id)
        job.status = JobStatus.FAILED
        job.error = error
        job.execution_id = execution_id or job.execution_id
        job.completed_at = utc_now()
        await self._session.commit()

        logger.warning("job_failed", job_id=job_id, execution_id=execution_id)

    async def get_pending_jobs_count(self, due_only: bool = True) -> int:
        """Number of PENDING jobs, by default only those due now."""
        query = (
            select(func.count())
            .select_from(ExecutionJob)
            .where(ExecutionJob.status == JobStatus.PENDING)
        )
        if due_only:
            query = query.where(
                or_(ExecutionJob.scheduled_at.is_(None), ExecutionJob.scheduled_at <= utc_now())
            )
        return (await self._session.execute(query)).scalar_one()

    async def get_job(self, job_id: str) -> ExecutionJob:
        """Raises JobNotFoundError if the job doesn't exist."""
        job = await self._session.get(ExecutionJob, job_id)
        if job is None:
            raise JobNotFoundError(f"Job '{job_id}' not found")
        return job

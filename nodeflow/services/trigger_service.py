"""Trigger entry points.

Manual runs execute immediately; webhook and schedule triggers only enqueue
a job for the worker.
"""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.core.execution_engine import WorkflowExecutionEngine
from nodeflow.models.execution import Execution, TriggerType
from nodeflow.models.job import JobTriggerType
from nodeflow.models.node import NodeType
from nodeflow.services.queue_service import ExecutionQueue, as_utc
from nodeflow.services.workflow_service import WorkflowNotFoundError, load_workflow

logger = structlog.get_logger()


class TriggerService:
    """Starts workflow runs on behalf of the trigger kinds.

    Example usage:
        triggers = TriggerService(session)
        execution = await triggers.run_manual(workflow_id, user_id)
        job_id = await triggers.run_webhook(workflow_id, payload)
    """

    def __init__(
        self,
        session: AsyncSession,
        engine: WorkflowExecutionEngine | None = None,
    ) -> None:
        self._session = session
        self._engine = engine
        self._queue = ExecutionQueue(session)

    async def run_manual(
        self,
        workflow_id: str,
        user_id: str,
        trigger_data: Any = None,
    ) -> Execution:
        """Execute the workflow now and wait for it to finish.

        Raises:
            WorkflowNotFoundError: If the workflow doesn't exist
        """
        engine = self._engine or WorkflowExecutionEngine(self._session)
        logger.info("manual_trigger", workflow_id=workflow_id, user_id=user_id)
        return await engine.execute(
            workflow_id,
            user_id,
            trigger_type=TriggerType.MANUAL,
            trigger_data=trigger_data,
        )

    async def run_webhook(
        self,
        workflow_id: str,
        payload: Any,
        user_id: str | None = None,
    ) -> str:
        """Enqueue a webhook run. The workflow owner is used when no user is given.

        Raises:
            WorkflowNotFoundError: If the workflow doesn't exist or has no
                webhook trigger
        """
        loaded = await load_workflow(self._session, workflow_id)
        if not any(node.type == NodeType.WEBHOOK_TRIGGER.value for node in loaded.nodes):
            raise WorkflowNotFoundError(
                f"Workflow '{workflow_id}' has no webhook trigger"
            )

        job_id = await self._queue.enqueue_job(
            workflow_id,
            user_id or loaded.workflow.user_id,
            JobTriggerType.WEBHOOK,
            webhook_data=payload,
        )
        logger.info("webhook_trigger", workflow_id=workflow_id, job_id=job_id)
        return job_id

    async def run_schedule(
        self,
        workflow_id: str,
        user_id: str,
        at: datetime | None = None,
    ) -> str:
        """Enqueue a run due at ``at`` (immediately when omitted).

        Raises:
            WorkflowNotFoundError: If the workflow doesn't exist
        """
        await load_workflow(self._session, workflow_id)
        if at is not None:
            at = as_utc(at)
        job_id = await self._queue.enqueue_job(
            workflow_id,
            user_id,
            JobTriggerType.SCHEDULE,
            scheduled_at=at,
        )
        logger.info(
            "schedule_trigger",
            workflow_id=workflow_id,
            job_id=job_id,
            scheduled_at=at.isoformat() if at else None,
        )
        return job_id

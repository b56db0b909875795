"""Execution service.

Read models for execution history: list a user's executions and fetch one
with its ordered steps and logs. Executions are visible to the owner of the
workflow they ran.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.models.execution import (
    Execution,
    ExecutionDetail,
    ExecutionLog,
    ExecutionLogRead,
    ExecutionRead,
    ExecutionStatus,
    ExecutionStep,
    ExecutionStepRead,
)
from nodeflow.models.workflow import Workflow

logger = structlog.get_logger()


class ExecutionServiceError(Exception):
    """Error in execution service operations."""

    pass


class ExecutionNotFoundError(ExecutionServiceError):
    """Execution not found."""

    pass


class ExecutionAccessDeniedError(ExecutionServiceError):
    """User doesn't have access to execution."""

    pass


class ExecutionService:
    """Service for reading workflow executions.

    Example usage:
        service = ExecutionService(session)

        executions = await service.list_all("user-123", status=ExecutionStatus.FAILED)
        detail = await service.get(executions[0].id, "user-123")
        for step in detail.steps:
            print(step.node_id, step.status, step.error)
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(
        self,
        execution_id: str,
        user_id: str,
    ) -> ExecutionDetail:
        """Get an execution with its steps and logs.

        Raises:
            ExecutionNotFoundError: If execution doesn't exist
            ExecutionAccessDeniedError: If user doesn't own the workflow
        """
        execution = await self._get_and_verify(execution_id, user_id)

        steps = await self._session.execute(
            select(ExecutionStep)
            .where(ExecutionStep.execution_id == execution_id)
            .order_by(ExecutionStep.sequence, ExecutionStep.started_at)
        )
        logs = await self._session.execute(
            select(ExecutionLog)
            .where(ExecutionLog.execution_id == execution_id)
            .order_by(ExecutionLog.id)
        )

        return ExecutionDetail(
            **self._to_read(execution).model_dump(),
            steps=[
                ExecutionStepRead(
                    id=step.id,
                    node_id=step.node_id,
                    node_type=step.node_type,
                    sequence=step.sequence,
                    status=step.status,
                    output=step.get_output(),
                    error=step.error,
                    started_at=step.started_at,
                    completed_at=step.completed_at,
                )
                for step in steps.scalars().all()
            ],
            logs=[
                ExecutionLogRead(
                    node_id=log.node_id,
                    level=log.level,
                    message=log.message,
                    data=log.get_data(),
                    timestamp=log.timestamp,
                )
                for log in logs.scalars().all()
            ],
        )

    async def list_all(
        self,
        user_id: str,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionRead]:
        """List executions of the user's workflows, newest first."""
        query = (
            select(Execution)
            .join(Workflow, Workflow.id == Execution.workflow_id)
            .where(Workflow.user_id == user_id)
            .order_by(Execution.started_at.desc())
            .limit(limit)
            .offset(offset)
        )

        if workflow_id:
            query = query.where(Execution.workflow_id == workflow_id)
        if status:
            query = query.where(Execution.status == status)

        result = await self._session.execute(query)
        return [self._to_read(e) for e in result.scalars().all()]

    async def _get_and_verify(
        self,
        execution_id: str,
        user_id: str,
    ) -> Execution:
        """Get execution and verify the user owns its workflow.

        Raises:
            ExecutionNotFoundError: If not found
            ExecutionAccessDeniedError: If wrong owner
        """
        query = (
            select(Execution, Workflow.user_id)
            .join(Workflow, Workflow.id == Execution.workflow_id)
            .where(Execution.id == execution_id)
        )
        row = (await self._session.execute(query)).one_or_none()

        if row is None:
            raise ExecutionNotFoundError(f"Execution '{execution_id}' not found")

        execution, owner_id = row
        if owner_id != user_id:
            logger.warning(
                "execution_access_denied",
                execution_id=execution_id,
                requested_by=user_id,
                owner=owner_id,
            )
            raise ExecutionAccessDeniedError("Access denied to execution")

        return execution

    def _to_read(self, execution: Execution) -> ExecutionRead:
        """Convert execution entity to read schema."""
        return ExecutionRead(
            id=execution.id,
            workflow_id=execution.workflow_id,
            triggered_by=execution.triggered_by,
            trigger_type=execution.trigger_type,
            status=execution.status,
            trigger_data=execution.get_trigger_data(),
            output_data=execution.get_output_data(),
            error=execution.error,
            steps_completed=execution.steps_completed,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            duration_ms=execution.duration_ms,
        )

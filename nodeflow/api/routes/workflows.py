"""Workflow API endpoints.

Handles workflow CRUD operations and starting runs.
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Body, HTTPException, Query, status

from nodeflow.api.deps import (
    CurrentUser,
    ExecutionServiceDep,
    TriggerServiceDep,
    WorkflowServiceDep,
)
from nodeflow.models.execution import ExecutionDetail
from nodeflow.models.job import JobAccepted, ScheduleRequest
from nodeflow.models.workflow import WorkflowCreate, WorkflowRead, WorkflowSummary
from nodeflow.services.workflow_service import (
    WorkflowAccessDeniedError,
    WorkflowNotFoundError,
    WorkflowServiceError,
    WorkflowValidationError,
)

logger = structlog.get_logger()

router = APIRouter()


def _to_http_error(e: WorkflowServiceError) -> HTTPException:
    if isinstance(e, WorkflowNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, WorkflowAccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, WorkflowValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(e), "errors": e.errors},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=list[WorkflowSummary])
async def list_workflows(
    user: CurrentUser,
    service: WorkflowServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[WorkflowSummary]:
    """List user's workflows.

    Args:
        user: Current authenticated user id
        service: Workflow service
        limit: Maximum number of results
        offset: Pagination offset

    Returns:
        List of workflow summaries
    """
    return await service.list_all(user_id=user, limit=limit, offset=offset)


@router.post("", response_model=WorkflowRead, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    user: CurrentUser,
    service: WorkflowServiceDep,
    data: WorkflowCreate,
) -> WorkflowRead:
    """Create a new workflow.

    Args:
        user: Current authenticated user id
        service: Workflow service
        data: Workflow with its nodes and connections

    Returns:
        Created workflow
    """
    try:
        return await service.create(user_id=user, data=data)
    except WorkflowServiceError as e:
        raise _to_http_error(e) from e


@router.get("/{workflow_id}", response_model=WorkflowRead)
async def get_workflow(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
) -> WorkflowRead:
    """Get a workflow by ID."""
    try:
        return await service.get(workflow_id, user)
    except WorkflowServiceError as e:
        raise _to_http_error(e) from e


@router.put("/{workflow_id}", response_model=WorkflowRead)
async def update_workflow(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
    data: WorkflowCreate,
) -> WorkflowRead:
    """Replace a workflow's definition."""
    try:
        return await service.update(workflow_id, user, data)
    except WorkflowServiceError as e:
        raise _to_http_error(e) from e


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
) -> None:
    """Delete a workflow and its execution history."""
    try:
        await service.delete(workflow_id, user)
    except WorkflowServiceError as e:
        raise _to_http_error(e) from e


@router.post("/{workflow_id}/run", response_model=ExecutionDetail)
async def run_workflow(
    workflow_id: str,
    user: CurrentUser,
    workflows: WorkflowServiceDep,
    triggers: TriggerServiceDep,
    executions: ExecutionServiceDep,
    trigger_data: Annotated[dict[str, Any] | None, Body()] = None,
) -> ExecutionDetail:
    """Run a workflow now and return the finished execution.

    A failed run is still a 200; its status and error are in the body.
    """
    try:
        await workflows.get(workflow_id, user)
    except WorkflowServiceError as e:
        raise _to_http_error(e) from e

    logger.info("workflow_run_requested", workflow_id=workflow_id, user_id=user)
    execution = await triggers.run_manual(workflow_id, user, trigger_data)
    return await executions.get(execution.id, user)


@router.post(
    "/{workflow_id}/schedule",
    response_model=JobAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def schedule_workflow(
    workflow_id: str,
    user: CurrentUser,
    workflows: WorkflowServiceDep,
    triggers: TriggerServiceDep,
    data: ScheduleRequest | None = None,
) -> JobAccepted:
    """Queue a run for the job worker."""
    try:
        await workflows.get(workflow_id, user)
    except WorkflowServiceError as e:
        raise _to_http_error(e) from e

    job_id = await triggers.run_schedule(
        workflow_id,
        user,
        at=data.scheduled_at if data is not None else None,
    )
    return JobAccepted(job_id=job_id)

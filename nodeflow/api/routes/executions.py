"""Execution API endpoints.

Read-only execution history: runs are started through the workflow routes,
webhooks and the job worker.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query, status

from nodeflow.api.deps import CurrentUser, ExecutionServiceDep
from nodeflow.models.execution import ExecutionDetail, ExecutionRead, ExecutionStatus
from nodeflow.services.execution_service import (
    ExecutionAccessDeniedError,
    ExecutionNotFoundError,
)

logger = structlog.get_logger()

router = APIRouter()


@router.get("", response_model=list[ExecutionRead])
async def list_executions(
    user: CurrentUser,
    service: ExecutionServiceDep,
    workflow_id: Annotated[str | None, Query()] = None,
    status_filter: Annotated[ExecutionStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[ExecutionRead]:
    """List user's executions.

    Args:
        user: Current authenticated user id
        service: Execution service
        workflow_id: Filter by workflow
        status_filter: Filter by status
        limit: Maximum results
        offset: Pagination offset

    Returns:
        List of executions, newest first
    """
    return await service.list_all(
        user_id=user,
        workflow_id=workflow_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )


@router.get("/{execution_id}", response_model=ExecutionDetail)
async def get_execution(
    execution_id: str,
    user: CurrentUser,
    service: ExecutionServiceDep,
) -> ExecutionDetail:
    """Get an execution with its steps and logs."""
    try:
        return await service.get(execution_id, user)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except ExecutionAccessDeniedError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e),
        ) from e

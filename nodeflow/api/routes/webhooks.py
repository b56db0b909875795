"""Webhook ingress.

Unauthenticated: the run is attributed to the workflow owner. The request is
only queued; the job worker executes it.
"""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from nodeflow.api.deps import TriggerServiceDep
from nodeflow.models.job import JobAccepted
from nodeflow.services.workflow_service import WorkflowNotFoundError

logger = structlog.get_logger()

router = APIRouter()


@router.post(
    "/{workflow_id}",
    response_model=JobAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def receive_webhook(
    workflow_id: str,
    request: Request,
    triggers: TriggerServiceDep,
) -> JobAccepted:
    """Queue a webhook-triggered run.

    The JSON body becomes the webhook trigger's output; a non-JSON body is
    passed as text.
    """
    body = await request.body()
    payload: Any
    try:
        payload = await request.json() if body else {}
    except ValueError:
        payload = body.decode("utf-8", errors="replace")

    try:
        job_id = await triggers.run_webhook(workflow_id, payload)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    logger.info("webhook_received", workflow_id=workflow_id, job_id=job_id)
    return JobAccepted(job_id=job_id)

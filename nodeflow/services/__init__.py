"""Services layer - Business logic and orchestration.

The trigger service depends on the execution engine, which itself uses the
credential and workflow services; import it from its module directly.
"""

from nodeflow.services.credential_service import CredentialService
from nodeflow.services.execution_service import ExecutionService
from nodeflow.services.queue_service import ExecutionQueue
from nodeflow.services.workflow_service import WorkflowService

__all__ = [
    "CredentialService",
    "ExecutionQueue",
    "ExecutionService",
    "WorkflowService",
]

"""Data models - SQLModel entities and runtime models."""

from nodeflow.models.credential import (
    Credential,
    CredentialCreate,
    CredentialDecrypted,
    CredentialMasked,
    CredentialRead,
    CredentialType,
    CredentialUpdate,
)
from nodeflow.models.execution import (
    Execution,
    ExecutionDetail,
    ExecutionLog,
    ExecutionLogRead,
    ExecutionRead,
    ExecutionStatus,
    ExecutionStep,
    ExecutionStepRead,
    LogLevel,
    StepStatus,
    TriggerType,
)
from nodeflow.models.job import (
    ExecutionJob,
    ExecutionJobRead,
    JobAccepted,
    JobStatus,
    JobTriggerType,
    ScheduleRequest,
)
from nodeflow.models.node import NodeCategory, NodeDefinition, NodeField, NodeFieldType, NodeType
from nodeflow.models.workflow import (
    Connection,
    ConnectionSchema,
    Workflow,
    WorkflowCreate,
    WorkflowNode,
    WorkflowNodeSchema,
    WorkflowRead,
    WorkflowSummary,
)

__all__ = [
    "Connection",
    "ConnectionSchema",
    "Credential",
    "CredentialCreate",
    "CredentialDecrypted",
    "CredentialMasked",
    "CredentialRead",
    "CredentialType",
    "CredentialUpdate",
    "Execution",
    "ExecutionDetail",
    "ExecutionJob",
    "ExecutionJobRead",
    "ExecutionLog",
    "ExecutionLogRead",
    "ExecutionRead",
    "ExecutionStatus",
    "ExecutionStep",
    "ExecutionStepRead",
    "JobAccepted",
    "JobStatus",
    "JobTriggerType",
    "LogLevel",
    "NodeCategory",
    "NodeDefinition",
    "NodeField",
    "NodeFieldType",
    "NodeType",
    "ScheduleRequest",
    "StepStatus",
    "TriggerType",
    "Workflow",
    "WorkflowCreate",
    "WorkflowNode",
    "WorkflowNodeSchema",
    "WorkflowRead",
    "WorkflowSummary",
]

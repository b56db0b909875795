"""Execution job model.

A job is a queued request to run a workflow, created by an asynchronous
trigger (webhook call or schedule tick) and consumed by the job worker.
Status moves PENDING -> PROCESSING -> COMPLETED | FAILED.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel, Text


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Queue lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobTriggerType(str, Enum):
    """Asynchronous trigger that produced the job."""

    WEBHOOK = "webhook"
    SCHEDULE = "schedule"


class ExecutionJob(SQLModel, table=True):
    """Execution job database entity."""

    __tablename__ = "execution_job"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique job identifier (UUID)",
    )
    workflow_id: str = Field(foreign_key="workflow.id", index=True)
    user_id: str = Field(max_length=255, description="User the run is attributed to")
    trigger_type: JobTriggerType
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    scheduled_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        description="Earliest time the job may run; null means immediately",
    )
    webhook_data: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="JSON webhook payload",
    )
    execution_id: str | None = Field(
        default=None,
        max_length=36,
        description="Execution produced by this job",
    )
    error: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
    )
    started_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )
    completed_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )

    def get_webhook_data(self) -> Any:
        if self.webhook_data is None:
            return None
        return json.loads(self.webhook_data)

    def set_webhook_data(self, data: Any) -> None:
        self.webhook_data = None if data is None else json.dumps(data, default=str)


class ExecutionJobRead(SQLModel):
    """Schema for reading job data."""

    id: str
    workflow_id: str
    user_id: str
    trigger_type: JobTriggerType
    status: JobStatus
    scheduled_at: datetime | None = None
    execution_id: str | None = None
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class ScheduleRequest(SQLModel):
    """Request to queue a run, optionally not before ``scheduled_at``."""

    scheduled_at: datetime | None = None


class JobAccepted(SQLModel):
    """Response for a trigger that queued a job."""

    job_id: str
    status: JobStatus = JobStatus.PENDING

"""Execution entity models.

Defines the tables recording workflow runs:
- Execution: one run of a workflow from trigger to terminal status
- ExecutionStep: one node's run within an execution
- ExecutionLog: append-only audit lines emitted while running nodes
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


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; every stored timestamp is UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _dumps(data: Any) -> str:
    return json.dumps(data, default=str)


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED})


class StepStatus(str, Enum):
    """Status of a single node run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class LogLevel(str, Enum):
    """Execution log severity."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class TriggerType(str, Enum):
    """How an execution was started."""

    MANUAL = "manual"
    WEBHOOK = "webhook"
    SCHEDULE = "schedule"


class ExecutionStateError(Exception):
    """Transition attempted on an execution that already reached a terminal state."""

    pass


class Execution(SQLModel, table=True):
    """Execution database entity.

    Status moves RUNNING -> COMPLETED | FAILED and is frozen afterwards.
    Trigger data and output are stored as JSON strings.
    """

    __tablename__ = "execution"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique execution identifier (UUID)",
    )
    workflow_id: str = Field(
        foreign_key="workflow.id",
        index=True,
        description="Associated workflow ID",
    )
    triggered_by: str = Field(
        index=True,
        max_length=255,
        description="User who triggered the execution",
    )
    trigger_type: TriggerType = Field(default=TriggerType.MANUAL)
    status: ExecutionStatus = Field(
        default=ExecutionStatus.PENDING,
        index=True,
        description="Current execution status",
    )
    trigger_data: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="JSON payload that started the execution",
    )
    output_data: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="JSON outputs of the executed nodes",
    )
    error: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Error message if execution failed",
    )
    steps_completed: int = Field(default=0, ge=0)
    started_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        description="Execution start timestamp (UTC)",
    )
    completed_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        description="Execution completion timestamp (UTC)",
    )

    def get_trigger_data(self) -> Any:
        if self.trigger_data is None:
            return None
        return json.loads(self.trigger_data)

    def set_trigger_data(self, data: Any) -> None:
        self.trigger_data = None if data is None else _dumps(data)

    def get_output_data(self) -> dict[str, Any] | None:
        if self.output_data is None:
            return None
        return json.loads(self.output_data)

    def set_output_data(self, data: dict[str, Any]) -> None:
        self.output_data = _dumps(data)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_ms(self) -> int | None:
        """Calculate execution duration in milliseconds."""
        if self.completed_at is None:
            return None
        delta = _as_utc(self.completed_at) - _as_utc(self.started_at)
        return int(delta.total_seconds() * 1000)

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise ExecutionStateError(
                f"Execution {self.id} is already {self.status.value}"
            )

    def mark_running(self) -> None:
        """Mark execution as running."""
        self._ensure_open()
        self.status = ExecutionStatus.RUNNING

    def mark_completed(self, output_data: dict[str, Any] | None = None) -> None:
        """Mark execution as completed with output data."""
        self._ensure_open()
        self.status = ExecutionStatus.COMPLETED
        if output_data is not None:
            self.set_output_data(output_data)
        self.completed_at = utc_now()

    def mark_failed(self, error: str) -> None:
        """Mark execution as failed with error information."""
        self._ensure_open()
        self.status = ExecutionStatus.FAILED
        self.error = error
        self.completed_at = utc_now()


class ExecutionStep(SQLModel, table=True):
    """One node's run within an execution."""

    __tablename__ = "execution_step"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
    )
    execution_id: str = Field(foreign_key="execution.id", index=True)
    node_id: str = Field(max_length=100)
    node_type: str = Field(max_length=64)
    sequence: int = Field(default=0, description="Position in the execution order")
    status: StepStatus = Field(default=StepStatus.RUNNING)
    output: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="JSON node output",
    )
    error: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    started_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
    )
    completed_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )

    def get_output(self) -> Any:
        if self.output is None:
            return None
        return json.loads(self.output)

    def set_output(self, output: Any) -> None:
        self.output = None if output is None else _dumps(output)

    def seal(
        self,
        status: StepStatus,
        output: Any = None,
        error: str | None = None,
    ) -> None:
        """Record the final status of the step."""
        self.status = status
        self.set_output(output)
        self.error = error
        self.completed_at = utc_now()


class ExecutionLog(SQLModel, table=True):
    """Append-only audit line for an execution."""

    __tablename__ = "execution_log"

    id: int | None = Field(default=None, primary_key=True)
    execution_id: str = Field(foreign_key="execution.id", index=True)
    node_id: str | None = Field(default=None, max_length=100)
    level: LogLevel = Field(default=LogLevel.INFO)
    message: str = Field(sa_column=Column(Text, nullable=False))
    data: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="JSON structured context",
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
    )

    def get_data(self) -> Any:
        if self.data is None:
            return None
        return json.loads(self.data)

    def set_data(self, data: Any) -> None:
        self.data = None if data is None else _dumps(data)


class ExecutionStepRead(SQLModel):
    """Schema for reading a step."""

    id: str
    node_id: str
    node_type: str
    sequence: int
    status: StepStatus
    output: Any = None
    error: str | None = None
    started_at: datetime
    completed_at: datetime | None = None


class ExecutionLogRead(SQLModel):
    """Schema for reading a log line."""

    node_id: str | None = None
    level: LogLevel
    message: str
    data: Any = None
    timestamp: datetime


class ExecutionRead(SQLModel):
    """Schema for reading execution data."""

    id: str
    workflow_id: str
    triggered_by: str
    trigger_type: TriggerType
    status: ExecutionStatus
    trigger_data: Any = None
    output_data: dict[str, Any] | None = None
    error: str | None = None
    steps_completed: int
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None


class ExecutionDetail(ExecutionRead):
    """Execution with its ordered steps and logs."""

    steps: list[ExecutionStepRead] = Field(default_factory=list)
    logs: list[ExecutionLogRead] = Field(default_factory=list)

"""Workflow entity models.

A workflow is stored as three tables: the workflow row, one row per node and
one row per connection. Node and connection rows carry a ``sequence`` so the
order they were saved in is reproducible when the graph is loaded.
"""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import field_validator, model_validator
from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel, Text

DEFAULT_HANDLE = "main"


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class WorkflowBase(SQLModel):
    """Base workflow fields shared across models."""

    name: str = Field(
        max_length=255,
        min_length=1,
        description="Workflow name",
    )
    description: str | None = Field(
        default=None,
        max_length=2000,
        description="Workflow description",
    )


class Workflow(WorkflowBase, table=True):
    """Workflow database entity."""

    __tablename__ = "workflow"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique workflow identifier (UUID)",
    )
    user_id: str = Field(
        index=True,
        max_length=255,
        description="Owner user ID",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )


class WorkflowNode(SQLModel, table=True):
    """A node of a workflow graph.

    ``id`` is unique within its workflow. ``type`` is kept as a plain string so
    rows written by other tools with unknown types can still be loaded and
    reported as unsupported at execution time.
    """

    __tablename__ = "workflow_node"

    workflow_id: str = Field(
        foreign_key="workflow.id",
        primary_key=True,
        description="Owning workflow ID",
    )
    id: str = Field(
        primary_key=True,
        max_length=100,
        description="Node identifier, unique within the workflow",
    )
    type: str = Field(max_length=64, description="NodeType value")
    position_x: float = Field(default=0.0)
    position_y: float = Field(default=0.0)
    data: str = Field(
        default="{}",
        sa_column=Column(Text, nullable=False),
        description="JSON node configuration",
    )
    sequence: int = Field(default=0, description="Insertion order within the workflow")

    def get_data(self) -> dict[str, Any]:
        """Parse and return the node configuration."""
        return json.loads(self.data) if self.data else {}

    def set_data(self, data: dict[str, Any]) -> None:
        self.data = json.dumps(data)


class Connection(SQLModel, table=True):
    """A directed edge between two nodes of the same workflow."""

    __tablename__ = "workflow_connection"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
    )
    workflow_id: str = Field(foreign_key="workflow.id", index=True)
    source_node_id: str = Field(max_length=100)
    target_node_id: str = Field(max_length=100)
    source_handle: str = Field(default=DEFAULT_HANDLE, max_length=100)
    target_handle: str = Field(default=DEFAULT_HANDLE, max_length=100)
    sequence: int = Field(default=0, description="Insertion order within the workflow")


class WorkflowNodeSchema(SQLModel):
    """Schema for a node in create/read payloads."""

    id: str = Field(min_length=1, max_length=100)
    type: str = Field(min_length=1, max_length=64)
    position: dict[str, float] = Field(default_factory=lambda: {"x": 0, "y": 0})
    data: dict[str, Any] = Field(default_factory=dict)


class ConnectionSchema(SQLModel):
    """Schema for a connection in create/read payloads."""

    source: str
    target: str
    sourceHandle: str = DEFAULT_HANDLE
    targetHandle: str = DEFAULT_HANDLE

    @field_validator("sourceHandle", "targetHandle", mode="before")
    @classmethod
    def default_handle(cls, v: Any) -> Any:
        """Null or empty handles mean the default handle."""
        return v or DEFAULT_HANDLE


class WorkflowCreate(WorkflowBase):
    """Schema for creating a new workflow."""

    nodes: list[WorkflowNodeSchema] = Field(default_factory=list)
    connections: list[ConnectionSchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_graph(self) -> "WorkflowCreate":
        """Node ids must be unique and connections must reference known nodes."""
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("Node ids must be unique within a workflow")
        known = set(node_ids)
        for conn in self.connections:
            if conn.source not in known or conn.target not in known:
                raise ValueError(
                    f"Connection {conn.source} -> {conn.target} references an unknown node"
                )
        return self


class WorkflowRead(WorkflowBase):
    """Schema for reading workflow data."""

    id: str
    user_id: str
    nodes: list[WorkflowNodeSchema]
    connections: list[ConnectionSchema]
    created_at: datetime
    updated_at: datetime


class WorkflowSummary(WorkflowBase):
    """Schema for workflow list entries."""

    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime

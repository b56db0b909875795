"""Workflow service.

Handles CRUD operations for workflow graphs. Nodes and connections are
stored with their insertion sequence so execution order is reproducible.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.models.execution import Execution, ExecutionLog, ExecutionStep
from nodeflow.models.job import ExecutionJob
from nodeflow.models.node import NodeType
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

logger = structlog.get_logger()


class WorkflowServiceError(Exception):
    """Error in workflow service operations."""

    pass


class WorkflowNotFoundError(WorkflowServiceError):
    """Workflow not found."""

    pass


class WorkflowAccessDeniedError(WorkflowServiceError):
    """User doesn't have access to workflow."""

    pass


class WorkflowValidationError(WorkflowServiceError):
    """Workflow validation failed."""

    def __init__(self, message: str, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = errors


@dataclass
class LoadedWorkflow:
    """A workflow with its nodes and connections in insertion order."""

    workflow: Workflow
    nodes: list[WorkflowNode]
    connections: list[Connection]


def list_node_types() -> list[NodeType]:
    """Every node type a workflow may contain."""
    return list(NodeType)


async def load_workflow(session: AsyncSession, workflow_id: str) -> LoadedWorkflow:
    """Load a workflow graph.

    Raises:
        WorkflowNotFoundError: If the workflow doesn't exist
    """
    workflow = await session.get(Workflow, workflow_id)
    if workflow is None:
        raise WorkflowNotFoundError(f"Workflow '{workflow_id}' not found")

    nodes = await session.execute(
        select(WorkflowNode)
        .where(WorkflowNode.workflow_id == workflow_id)
        .order_by(WorkflowNode.sequence)
    )
    connections = await session.execute(
        select(Connection)
        .where(Connection.workflow_id == workflow_id)
        .order_by(Connection.sequence)
    )
    return LoadedWorkflow(
        workflow=workflow,
        nodes=list(nodes.scalars().all()),
        connections=list(connections.scalars().all()),
    )


class WorkflowService:
    """Service for managing workflows.

    Example usage:
        service = WorkflowService(session)

        workflow = await service.create(
            user_id="user-123",
            data=WorkflowCreate(
                name="My Workflow",
                nodes=[{"id": "t", "type": "MANUAL_TRIGGER"}],
                connections=[],
            ),
        )
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        user_id: str,
        data: WorkflowCreate,
    ) -> WorkflowRead:
        """Create a new workflow.

        Raises:
            WorkflowValidationError: If the graph is invalid
        """
        self._check_graph(data)

        workflow = Workflow(
            user_id=user_id,
            name=data.name,
            description=data.description,
        )
        self._session.add(workflow)
        await self._session.flush()
        self._add_graph(workflow.id, data)

        await self._session.commit()
        await self._session.refresh(workflow)

        logger.info(
            "workflow_created",
            workflow_id=workflow.id,
            user_id=user_id,
            node_count=len(data.nodes),
        )

        return await self.get(workflow.id, user_id)

    async def get(
        self,
        workflow_id: str,
        user_id: str,
    ) -> WorkflowRead:
        """Get a workflow with its graph.

        Raises:
            WorkflowNotFoundError: If workflow doesn't exist
            WorkflowAccessDeniedError: If user doesn't own workflow
        """
        await self._get_and_verify(workflow_id, user_id)
        loaded = await load_workflow(self._session, workflow_id)
        return self._to_read(loaded)

    async def list_all(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WorkflowSummary]:
        """List user's workflows, newest first."""
        query = (
            select(Workflow)
            .where(Workflow.user_id == user_id)
            .order_by(Workflow.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(query)
        return [WorkflowSummary.model_validate(w) for w in result.scalars().all()]

    async def update(
        self,
        workflow_id: str,
        user_id: str,
        data: WorkflowCreate,
    ) -> WorkflowRead:
        """Replace a workflow's name, description and graph.

        Raises:
            WorkflowNotFoundError: If workflow doesn't exist
            WorkflowAccessDeniedError: If user doesn't own workflow
            WorkflowValidationError: If the graph is invalid
        """
        workflow = await self._get_and_verify(workflow_id, user_id)
        self._check_graph(data)

        workflow.name = data.name
        workflow.description = data.description
        await self._delete_graph(workflow_id)
        self._add_graph(workflow_id, data)

        await self._session.commit()

        logger.info(
            "workflow_updated",
            workflow_id=workflow_id,
            user_id=user_id,
            node_count=len(data.nodes),
        )

        return await self.get(workflow_id, user_id)

    async def delete(
        self,
        workflow_id: str,
        user_id: str,
    ) -> None:
        """Delete a workflow together with its jobs and execution history.

        Raises:
            WorkflowNotFoundError: If workflow doesn't exist
            WorkflowAccessDeniedError: If user doesn't own workflow
        """
        workflow = await self._get_and_verify(workflow_id, user_id)

        execution_ids = select(Execution.id).where(Execution.workflow_id == workflow_id)
        await self._session.execute(
            delete(ExecutionLog).where(ExecutionLog.execution_id.in_(execution_ids))
        )
        await self._session.execute(
            delete(ExecutionStep).where(ExecutionStep.execution_id.in_(execution_ids))
        )
        await self._session.execute(
            delete(ExecutionJob).where(ExecutionJob.workflow_id == workflow_id)
        )
        await self._session.execute(
            delete(Execution).where(Execution.workflow_id == workflow_id)
        )
        await self._delete_graph(workflow_id)
        await self._session.delete(workflow)
        await self._session.commit()

        logger.info(
            "workflow_deleted",
            workflow_id=workflow_id,
            user_id=user_id,
        )

    async def _get_and_verify(
        self,
        workflow_id: str,
        user_id: str,
    ) -> Workflow:
        """Get workflow and verify ownership.

        Raises:
            WorkflowNotFoundError: If not found
            WorkflowAccessDeniedError: If wrong owner
        """
        workflow = await self._session.get(Workflow, workflow_id)

        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow '{workflow_id}' not found")

        if workflow.user_id != user_id:
            logger.warning(
                "workflow_access_denied",
                workflow_id=workflow_id,
                requested_by=user_id,
                owner=workflow.user_id,
            )
            raise WorkflowAccessDeniedError("Access denied to workflow")

        return workflow

    def _check_graph(self, data: WorkflowCreate) -> None:
        known = {t.value for t in NodeType}
        errors = [
            f"Unknown node type: {node.type}"
            for node in data.nodes
            if node.type not in known
        ]
        errors.extend(
            f"Self-loop detected on node: {conn.source}"
            for conn in data.connections
            if conn.source == conn.target
        )
        if errors:
            raise WorkflowValidationError("Invalid workflow graph", errors=errors)

    def _add_graph(self, workflow_id: str, data: WorkflowCreate) -> None:
        for sequence, node in enumerate(data.nodes):
            row = WorkflowNode(
                workflow_id=workflow_id,
                id=node.id,
                type=node.type,
                position_x=float(node.position.get("x", 0)),
                position_y=float(node.position.get("y", 0)),
                sequence=sequence,
            )
            row.set_data(node.data)
            self._session.add(row)

        for sequence, conn in enumerate(data.connections):
            self._session.add(
                Connection(
                    workflow_id=workflow_id,
                    source_node_id=conn.source,
                    target_node_id=conn.target,
                    source_handle=conn.sourceHandle,
                    target_handle=conn.targetHandle,
                    sequence=sequence,
                )
            )

    async def _delete_graph(self, workflow_id: str) -> None:
        # Rows go through the unit of work so replacements can reuse node ids.
        loaded = await load_workflow(self._session, workflow_id)
        for row in [*loaded.connections, *loaded.nodes]:
            await self._session.delete(row)
        await self._session.flush()

    def _to_read(self, loaded: LoadedWorkflow) -> WorkflowRead:
        workflow = loaded.workflow
        return WorkflowRead(
            id=workflow.id,
            user_id=workflow.user_id,
            name=workflow.name,
            description=workflow.description,
            nodes=[
                WorkflowNodeSchema(
                    id=node.id,
                    type=node.type,
                    position={"x": node.position_x, "y": node.position_y},
                    data=node.get_data(),
                )
                for node in loaded.nodes
            ],
            connections=[
                ConnectionSchema(
                    source=conn.source_node_id,
                    target=conn.target_node_id,
                    sourceHandle=conn.source_handle,
                    targetHandle=conn.target_handle,
                )
                for conn in loaded.connections
            ],
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
        )

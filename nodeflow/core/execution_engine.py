"""Workflow execution engine.

Runs a workflow graph node by node in topological order. Every step
transition and log line is committed before the next node starts, so a
crash after step N leaves steps 1..N recorded and step N+1 never started.
"""

from dataclasses import dataclass, field
from functools import partial
from typing import Any

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.config import Settings, get_settings
from nodeflow.core.context import ExecutionContext
from nodeflow.core.graph import CycleDetectedError, compute_execution_order
from nodeflow.core.retry import RetryPolicy
from nodeflow.models.execution import (
    Execution,
    ExecutionLog,
    ExecutionStatus,
    ExecutionStep,
    LogLevel,
    StepStatus,
    TriggerType,
)
from nodeflow.models.node import NodeType
from nodeflow.models.workflow import Connection, WorkflowNode
from nodeflow.nodes.base import NodeContext, NodeLog, NodeResult, format_node_error
from nodeflow.nodes.registry import NodeRegistry, get_node_registry
from nodeflow.services.credential_service import CredentialService
from nodeflow.services.workflow_service import load_workflow

logger = structlog.get_logger()


@dataclass
class _RunState:
    """Bookkeeping for one execution pass."""

    context: ExecutionContext
    completed: set[str] = field(default_factory=set)
    branches: dict[str, str | None] = field(default_factory=dict)

    def is_live(self, conn: Connection) -> bool:
        """An edge is live when its source completed and, for branching
        sources, the edge leaves through the selected handle."""
        if conn.source_node_id not in self.completed:
            return False
        branch = self.branches.get(conn.source_node_id)
        return branch is None or conn.source_handle == branch


class WorkflowExecutionEngine:
    """Sequential workflow executor.

    Example usage:
        engine = WorkflowExecutionEngine(session)
        execution = await engine.execute(workflow_id, user_id)
        print(execution.status, execution.error)
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: NodeRegistry | None = None,
        *,
        credentials: CredentialService | None = None,
        retry_policy: RetryPolicy | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._registry = registry or get_node_registry()
        self._settings = settings or get_settings()
        self._credentials = credentials or CredentialService(session)
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=self._settings.retry_max_retries,
            delay=self._settings.retry_base_delay,
            backoff=self._settings.retry_backoff_factor,
        )
        self._http_transport = http_transport
        # Context of the most recent run, for callers that inspect variables
        self.last_context: ExecutionContext | None = None

    async def execute(
        self,
        workflow_id: str,
        user_id: str,
        trigger_type: TriggerType = TriggerType.MANUAL,
        trigger_data: Any = None,
    ) -> Execution:
        """Run a workflow to completion or first failure.

        Returns:
            The execution in a terminal state (COMPLETED or FAILED)

        Raises:
            WorkflowNotFoundError: If the workflow doesn't exist
        """
        loaded = await load_workflow(self._session, workflow_id)

        execution = Execution(
            workflow_id=workflow_id,
            triggered_by=user_id,
            trigger_type=trigger_type,
            status=ExecutionStatus.RUNNING,
        )
        execution.set_trigger_data(trigger_data)
        self._session.add(execution)
        await self._session.commit()

        logger.info(
            "execution_started",
            execution_id=execution.id,
            workflow_id=workflow_id,
            trigger_type=trigger_type.value,
            node_count=len(loaded.nodes),
        )

        try:
            await self._run(execution, loaded.nodes, loaded.connections, user_id, trigger_data)
        except Exception as e:
            await self._session.rollback()
            logger.exception(
                "execution_failed_unexpected",
                execution_id=execution.id,
            )
            await self._session.refresh(execution)
            if not execution.is_terminal:
                execution.mark_failed(str(e) or type(e).__name__)
                await self._session.commit()

        await self._session.refresh(execution)
        return execution

    async def _run(
        self,
        execution: Execution,
        nodes: list[WorkflowNode],
        connections: list[Connection],
        user_id: str,
        trigger_data: Any,
    ) -> None:
        try:
            order = compute_execution_order([n.id for n in nodes], connections)
        except CycleDetectedError as e:
            self._add_logs(execution.id, None, [NodeLog(level=LogLevel.ERROR, message=str(e))])
            await self._fail(execution, str(e))
            return

        by_id = {node.id: node for node in nodes}
        incoming: dict[str, list[Connection]] = {node.id: [] for node in nodes}
        for conn in connections:
            if conn.target_node_id in incoming and conn.source_node_id in by_id:
                incoming[conn.target_node_id].append(conn)

        state = _RunState(
            context=ExecutionContext(execution_id=execution.id, workflow_id=execution.workflow_id)
        )
        self.last_context = state.context

        for sequence, node_id in enumerate(order):
            node = by_id[node_id]
            inbound = incoming[node_id]
            live = [conn for conn in inbound if state.is_live(conn)]

            if inbound and not live:
                await self._skip(execution, node, sequence)
                continue

            step = ExecutionStep(
                execution_id=execution.id,
                node_id=node.id,
                node_type=node.type,
                sequence=sequence,
                status=StepStatus.RUNNING,
            )
            self._session.add(step)
            await self._session.commit()

            inputs = {
                conn.source_node_id: state.context.get_node_output(conn.source_node_id)
                for conn in live
            }
            first_input = inputs[live[0].source_node_id] if live else None
            result = await self._dispatch(
                execution, node, user_id, trigger_data, state, first_input, inputs
            )

            if result.success:
                step.seal(StepStatus.COMPLETED, output=result.output)
            else:
                step.seal(StepStatus.FAILED, error=result.error)
            self._add_logs(execution.id, node.id, result.logs)

            if not result.success:
                await self._fail(execution, result.error or "Unknown error occurred")
                return

            state.context.set_node_output(node.id, result.output)
            state.completed.add(node.id)
            state.branches[node.id] = result.branch
            execution.steps_completed += 1
            await self._session.commit()

        execution.mark_completed(state.context.get_all_node_outputs())
        await self._session.commit()

        logger.info(
            "execution_completed",
            execution_id=execution.id,
            steps_completed=execution.steps_completed,
            duration_ms=execution.duration_ms,
        )

    async def _dispatch(
        self,
        execution: Execution,
        node: WorkflowNode,
        user_id: str,
        trigger_data: Any,
        state: _RunState,
        first_input: Any,
        inputs: dict[str, Any],
    ) -> NodeResult:
        executor = self._registry.get(node.type)
        if executor is None:
            message = format_node_error(
                f"Unsupported node type: {node.type}", node.id, node.type
            )
            return NodeResult(
                success=False,
                error=message,
                logs=[NodeLog(level=LogLevel.ERROR, message=message)],
            )

        context = NodeContext(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            user_id=user_id,
            node_id=node.id,
            node_type=NodeType(node.type),
            state=state.context,
            trigger_type=execution.trigger_type,
            trigger_data=trigger_data,
            input=first_input,
            inputs=inputs,
            credential_loader=partial(self._credentials.load_for_execution, user_id=user_id),
            retry_policy=self._retry_policy,
            http_transport=self._http_transport,
            settings=self._settings,
        )
        return await executor.run(node.get_data(), context)

    async def _skip(self, execution: Execution, node: WorkflowNode, sequence: int) -> None:
        step = ExecutionStep(
            execution_id=execution.id,
            node_id=node.id,
            node_type=node.type,
            sequence=sequence,
        )
        step.seal(StepStatus.SKIPPED)
        self._session.add(step)
        self._add_logs(
            execution.id,
            node.id,
            [NodeLog(level=LogLevel.INFO, message=f"Node {node.id} skipped: no active input")],
        )
        await self._session.commit()

        logger.debug("node_skipped", execution_id=execution.id, node_id=node.id)

    def _add_logs(self, execution_id: str, node_id: str | None, logs: list[NodeLog]) -> None:
        for entry in logs:
            row = ExecutionLog(
                execution_id=execution_id,
                node_id=node_id,
                level=entry.level,
                message=entry.message,
            )
            row.set_data(entry.data)
            self._session.add(row)

    async def _fail(self, execution: Execution, error: str) -> None:
        execution.mark_failed(error)
        await self._session.commit()

        logger.warning(
            "execution_failed",
            execution_id=execution.id,
            steps_completed=execution.steps_completed,
        )

"""Execution ordering for workflow graphs."""

from collections import deque
from typing import Iterable, Protocol


class ExecutionError(Exception):
    """Base exception for workflow execution."""

    pass


class CycleDetectedError(ExecutionError):
    """Workflow graph contains a cycle."""

    pass


class _Edge(Protocol):
    source_node_id: str
    target_node_id: str


def compute_execution_order(
    node_ids: Iterable[str],
    connections: Iterable[_Edge],
) -> list[str]:
    """Topologically order nodes with Kahn's algorithm.

    Ties are broken deterministically: roots are taken in the order of
    ``node_ids`` and nodes that become ready are queued in connection order.
    Connections referencing unknown nodes are ignored.

    Raises:
        CycleDetectedError: If not every node can be ordered
    """
    order_hint = list(dict.fromkeys(node_ids))
    known = set(order_hint)

    in_degree = {node_id: 0 for node_id in order_hint}
    successors: dict[str, list[str]] = {node_id: [] for node_id in order_hint}

    for conn in connections:
        source, target = conn.source_node_id, conn.target_node_id
        if source not in known or target not in known:
            continue
        successors[source].append(target)
        in_degree[target] += 1

    ready = deque(node_id for node_id in order_hint if in_degree[node_id] == 0)
    order: list[str] = []

    while ready:
        node_id = ready.popleft()
        order.append(node_id)
        for target in successors[node_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                ready.append(target)

    if len(order) != len(order_hint):
        raise CycleDetectedError("Circular dependency detected in workflow")

    return order

"""Node executors - Built-in workflow nodes."""

from nodeflow.nodes.base import BaseNode, NodeContext, NodeResult
from nodeflow.nodes.registry import NodeRegistry, get_node_registry

__all__ = [
    "BaseNode",
    "NodeContext",
    "NodeRegistry",
    "NodeResult",
    "get_node_registry",
]

"""Node registry.

Maps every NodeType to its executor. The engine dispatches through the
registry; a type without an executor is an "Unsupported node type" failure.
"""

from functools import lru_cache
from typing import Type

import structlog

from nodeflow.models.node import NodeCategory, NodeDefinition, NodeType
from nodeflow.nodes.base import BaseNode

logger = structlog.get_logger()


class NodeRegistryError(Exception):
    """Error in node registry operations."""

    pass


class NodeRegistry:
    """Central registry for workflow node executors.

    Example usage:
        registry = NodeRegistry()
        registry.register(DelayNode)

        node = registry.get(NodeType.DELAY)
        result = await node.run({"durationValue": 1}, context)
    """

    def __init__(self) -> None:
        self._instances: dict[NodeType, BaseNode] = {}

    def register(self, node: Type[BaseNode] | BaseNode) -> None:
        """Register a node class or a configured instance.

        Raises:
            NodeRegistryError: If the node type is already registered
        """
        instance = node() if isinstance(node, type) else node
        definition = instance.get_definition()

        if definition.node_type in self._instances:
            raise NodeRegistryError(f"Node '{definition.name}' already registered")

        self._instances[definition.node_type] = instance
        logger.debug(
            "node_registered",
            node_type=definition.name,
            category=definition.category.value,
        )

    def unregister(self, node_type: NodeType) -> None:
        self._instances.pop(node_type, None)

    def get(self, node_type: NodeType | str) -> BaseNode | None:
        """Get the executor for a node type, or None if unknown."""
        try:
            key = NodeType(node_type)
        except ValueError:
            return None
        return self._instances.get(key)

    def get_definition(self, node_type: NodeType | str) -> NodeDefinition | None:
        instance = self.get(node_type)
        if instance is None:
            return None
        return instance.get_definition()

    def list_all(self) -> list[NodeDefinition]:
        """List all registered node definitions."""
        return [inst.get_definition() for inst in self._instances.values()]

    def list_by_category(self, category: NodeCategory) -> list[NodeDefinition]:
        return [
            definition
            for definition in self.list_all()
            if definition.category == category
        ]

    def missing_types(self) -> list[NodeType]:
        """Node types with no registered executor."""
        return [t for t in NodeType if t not in self._instances]

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._instances

    def __len__(self) -> int:
        return len(self._instances)


def load_builtin_nodes(registry: NodeRegistry) -> NodeRegistry:
    """Register every built-in executor.

    Raises:
        NodeRegistryError: If a NodeType is left without an executor
    """
    from nodeflow.nodes.ai import AnthropicChatNode, GoogleGeminiChatNode, OpenAIChatNode
    from nodeflow.nodes.communication import (
        DiscordSendMessageNode,
        EmailSendNode,
        SlackSendMessageNode,
    )
    from nodeflow.nodes.data import CodeExecuteNode, FilterNode, JsonNode, SetVariableNode
    from nodeflow.nodes.database import MongoQueryNode, PostgresQueryNode
    from nodeflow.nodes.triggers import (
        InitialNode,
        ManualTriggerNode,
        ScheduleTriggerNode,
        WebhookTriggerNode,
    )
    from nodeflow.nodes.utilities import DelayNode, HttpRequestNode, IfConditionNode, MergeNode

    for node_class in (
        InitialNode,
        ManualTriggerNode,
        WebhookTriggerNode,
        ScheduleTriggerNode,
        HttpRequestNode,
        DelayNode,
        IfConditionNode,
        MergeNode,
        OpenAIChatNode,
        AnthropicChatNode,
        GoogleGeminiChatNode,
        SlackSendMessageNode,
        DiscordSendMessageNode,
        EmailSendNode,
        JsonNode,
        FilterNode,
        SetVariableNode,
        CodeExecuteNode,
        PostgresQueryNode,
        MongoQueryNode,
    ):
        registry.register(node_class)

    missing = registry.missing_types()
    if missing:
        raise NodeRegistryError(
            "No executor registered for: " + ", ".join(t.value for t in missing)
        )

    logger.info("builtin_nodes_loaded", count=len(registry))
    return registry


@lru_cache
def get_node_registry() -> NodeRegistry:
    """Process-wide registry with every built-in node loaded."""
    return load_builtin_nodes(NodeRegistry())

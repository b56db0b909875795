"""IF condition node.

Evaluates conditions against the node input (or a referenced value) and
selects the ``true`` or ``false`` outgoing handle.
"""

from dataclasses import dataclass, field
from typing import Any

from nodeflow.core.conditions import Condition, evaluate_conditions
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext
from nodeflow.nodes.helpers import parse_conditions, resolve_conditions

TRUE_HANDLE = "true"
FALSE_HANDLE = "false"


@dataclass
class IfConditionConfig:
    """Configuration for IF condition node."""

    conditions: list[Condition] = field(default_factory=list)
    combine: str = "AND"
    source: Any = None


class IfConditionNode(BaseNode[IfConditionConfig]):
    """IF condition node.

    Example:
        {"conditions": [{"fieldPath": "$.status", "operator": "equals", "value": "active"}],
         "combineConditions": "AND"}
    """

    label = "IF Condition"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.IF_CONDITION,
            display_name="IF Condition",
            description="Route execution to the true or false branch",
            category=NodeCategory.UTILITY,
            fields=[
                NodeField(
                    name="conditions",
                    display_name="Conditions",
                    type=NodeFieldType.ARRAY,
                    description="List of {fieldPath, operator, value}",
                ),
                NodeField(
                    name="combineConditions",
                    display_name="Combine",
                    type=NodeFieldType.STRING,
                    default="AND",
                    options=["AND", "OR"],
                ),
                NodeField(
                    name="source",
                    display_name="Source",
                    type=NodeFieldType.STRING,
                    description="Variable or node output to evaluate; defaults to the node input",
                ),
            ],
            output_handles=[TRUE_HANDLE, FALSE_HANDLE],
            tags=["condition", "branch", "control-flow"],
        )

    def validate_input(self, data: dict[str, Any]) -> IfConditionConfig:
        conditions, combine = parse_conditions(data)
        return IfConditionConfig(
            conditions=conditions,
            combine=combine,
            source=data.get("source"),
        )

    async def execute(self, config: IfConditionConfig, context: NodeContext) -> Any:
        value = context.resolve_source(config.source)
        result = evaluate_conditions(
            value, resolve_conditions(config.conditions, context), config.combine
        )
        branch = TRUE_HANDLE if result else FALSE_HANDLE
        context.select_branch(branch)

        context.log(
            LogLevel.INFO,
            f"IF condition evaluated to {branch}",
            {"conditions": len(config.conditions), "combineConditions": config.combine},
        )
        return {"result": result, "branch": branch, "data": value}

"""Filter node.

Keeps (or removes) the items of an array that match a set of conditions.
"""

from dataclasses import dataclass, field
from typing import Any

from nodeflow.core.conditions import Condition, evaluate_conditions, extract_json_path
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeValidationError
from nodeflow.nodes.helpers import parse_conditions, resolve_conditions

FILTER_MODES = ("keep", "remove")


@dataclass
class FilterConfig:
    """Configuration for filter node."""

    conditions: list[Condition] = field(default_factory=list)
    combine: str = "AND"
    mode: str = "keep"
    source: Any = None
    items_path: str | None = None


class FilterNode(BaseNode[FilterConfig]):
    """Filter node.

    Example:
        {"filterMode": "keep", "itemsPath": "data.users",
         "conditions": [{"fieldPath": "age", "operator": "greater_than", "value": "18"}]}
    """

    label = "Filter"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.FILTER,
            display_name="Filter",
            description="Keep or remove array items matching conditions",
            category=NodeCategory.DATA,
            fields=[
                NodeField(
                    name="filterMode",
                    display_name="Mode",
                    type=NodeFieldType.STRING,
                    default="keep",
                    options=list(FILTER_MODES),
                ),
                NodeField(
                    name="conditions",
                    display_name="Conditions",
                    type=NodeFieldType.ARRAY,
                    description="List of {fieldPath, operator, value} evaluated per item",
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
                    description="Variable or node output to filter; defaults to the node input",
                ),
                NodeField(
                    name="itemsPath",
                    display_name="Items Path",
                    type=NodeFieldType.STRING,
                    description="Path to the array inside the source",
                ),
            ],
            tags=["filter", "data"],
        )

    def validate_input(self, data: dict[str, Any]) -> FilterConfig:
        mode = data.get("filterMode") or "keep"
        if mode not in FILTER_MODES:
            raise NodeValidationError(f"Unknown filter mode: {mode}", field="filterMode")

        conditions, combine = parse_conditions(data)
        return FilterConfig(
            conditions=conditions,
            combine=combine,
            mode=mode,
            source=data.get("source"),
            items_path=data.get("itemsPath") or None,
        )

    async def execute(self, config: FilterConfig, context: NodeContext) -> Any:
        items = context.resolve_source(config.source)
        if config.items_path:
            items = extract_json_path(items, config.items_path)

        if not isinstance(items, list):
            raise NodeValidationError(
                f"Filter input must be an array, got {type(items).__name__}",
                field="itemsPath",
            )

        conditions = resolve_conditions(config.conditions, context)
        keep = config.mode == "keep"
        result = [
            item
            for item in items
            if evaluate_conditions(item, conditions, config.combine) == keep
        ]

        context.log(
            LogLevel.INFO,
            f"Filter applied with {len(config.conditions)} conditions",
            {"mode": config.mode, "input": len(items), "output": len(result)},
        )
        return result

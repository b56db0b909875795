"""JSON node.

Parses, stringifies, extracts from or reshapes JSON values. Transformation
rules map output keys to ``$.path`` expressions; a ``[*]`` segment collects
the remainder of the path from every item of an array.
"""

import json
from dataclasses import dataclass
from typing import Any

from nodeflow.core.conditions import extract_json_path
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeValidationError
from nodeflow.nodes.helpers import parse_json_config

OPERATIONS = ("parse", "stringify", "extract", "transform")
ERROR_HANDLING = ("fail", "skip", "default_value")


@dataclass
class JsonConfig:
    """Configuration for JSON node."""

    operation: str = "parse"
    json_path: str | None = None
    rules: Any = None
    error_handling: str = "fail"
    default_value: Any = None
    source: Any = None


def extract_path(data: Any, path: str) -> Any:
    """Extract a value, expanding ``[*]`` over arrays."""
    if "[*]" not in path:
        return extract_json_path(data, path)

    head, _, rest = path.partition("[*]")
    items = extract_json_path(data, head) if head.strip("$.") else data
    if not isinstance(items, list):
        return None
    rest = rest.lstrip(".")
    if not rest:
        return list(items)
    return [extract_path(item, rest) for item in items]


def apply_rules(data: Any, rules: Any) -> Any:
    """Build a new value from transformation rules."""
    if isinstance(rules, dict):
        return {key: apply_rules(data, rule) for key, rule in rules.items()}
    if isinstance(rules, list):
        return [apply_rules(data, rule) for rule in rules]
    if isinstance(rules, str) and rules.startswith("$"):
        return extract_path(data, rules)
    return rules


class JsonNode(BaseNode[JsonConfig]):
    """JSON node.

    Example:
        {"operation": "extract", "jsonPath": "$.data.items[0].name"}
    """

    label = "JSON"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.JSON_PARSE,
            display_name="JSON",
            description="Parse, stringify, extract or transform JSON",
            category=NodeCategory.DATA,
            fields=[
                NodeField(
                    name="operation",
                    display_name="Operation",
                    type=NodeFieldType.STRING,
                    default="parse",
                    options=list(OPERATIONS),
                ),
                NodeField(
                    name="jsonPath",
                    display_name="JSON Path",
                    type=NodeFieldType.STRING,
                    description="Path to extract, e.g. $.data.items",
                ),
                NodeField(
                    name="transformationRules",
                    display_name="Transformation Rules",
                    type=NodeFieldType.JSON,
                    description='Object mapping output keys to paths, e.g. {"name": "$.user.name"}',
                ),
                NodeField(
                    name="errorHandling",
                    display_name="On Error",
                    type=NodeFieldType.STRING,
                    default="fail",
                    options=list(ERROR_HANDLING),
                ),
                NodeField(
                    name="defaultValue",
                    display_name="Default Value",
                    type=NodeFieldType.STRING,
                    templated=True,
                ),
                NodeField(
                    name="source",
                    display_name="Source",
                    type=NodeFieldType.STRING,
                    description="Variable or node output to operate on; defaults to the node input",
                ),
            ],
            tags=["json", "data", "transform"],
        )

    def validate_input(self, data: dict[str, Any]) -> JsonConfig:
        operation = data.get("operation") or "parse"
        if operation not in OPERATIONS:
            raise NodeValidationError(f"Unknown JSON operation: {operation}", field="operation")

        error_handling = data.get("errorHandling") or "fail"
        if error_handling not in ERROR_HANDLING:
            raise NodeValidationError(
                f"Unknown error handling mode: {error_handling}", field="errorHandling"
            )

        json_path = data.get("jsonPath") or None
        if operation == "extract" and not json_path:
            raise NodeValidationError("jsonPath is required for extract", field="jsonPath")

        rules = None
        if operation == "transform":
            rules = parse_json_config(
                data.get("transformationRules"), "transformationRules", "transformation rules"
            )
            if not isinstance(rules, dict):
                raise NodeValidationError(
                    "Transformation rules must be a JSON object", field="transformationRules"
                )

        return JsonConfig(
            operation=operation,
            json_path=json_path,
            rules=rules,
            error_handling=error_handling,
            default_value=data.get("defaultValue"),
            source=data.get("source"),
        )

    def _apply(self, config: JsonConfig, value: Any) -> Any:
        if config.operation == "parse":
            if not isinstance(value, str):
                return value
            return json.loads(value)

        if config.operation == "stringify":
            return json.dumps(value)

        if isinstance(value, str):
            value = json.loads(value)

        if config.operation == "extract":
            return extract_path(value, config.json_path or "$")

        return apply_rules(value, config.rules)

    async def execute(self, config: JsonConfig, context: NodeContext) -> Any:
        value = context.resolve_source(config.source)

        try:
            result = self._apply(config, value)
        except (ValueError, TypeError) as e:
            if config.error_handling == "fail":
                raise
            fallback = None
            if config.error_handling == "default_value":
                fallback = context.resolve(config.default_value)
            context.log(
                LogLevel.WARN,
                f"JSON {config.operation} failed, continuing with "
                f"{'default value' if fallback is not None else 'null'}",
                {"error": str(e)},
            )
            return fallback

        context.log(LogLevel.INFO, f"JSON {config.operation} completed")
        return result

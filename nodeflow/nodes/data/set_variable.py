"""Set variable node.

Assigns workflow variables. Values accept ``{{...}}`` templates and are
converted to the declared type (string, number, boolean or json). Without a
declared type, a value consisting of a single template keeps the referenced
value's own type.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from nodeflow.core.conditions import stringify_value, to_number
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeValidationError

VARIABLE_TYPES = ("string", "number", "boolean", "json")

_SINGLE_TEMPLATE = re.compile(r"^\s*\{\{([^}]+)\}\}\s*$")
_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off", ""}


@dataclass
class VariableAssignment:
    name: str
    value: Any
    type: str | None = None


@dataclass
class SetVariableConfig:
    """Configuration for set variable node."""

    variables: list[VariableAssignment] = field(default_factory=list)


def coerce_variable(name: str, value: Any, type_: str) -> Any:
    """Convert a resolved value to the declared variable type.

    Raises:
        NodeValidationError: If the value cannot be converted
    """
    if type_ == "string":
        return value if isinstance(value, str) else stringify_value(value)

    if type_ == "number":
        number = to_number(value)
        if number is None:
            raise NodeValidationError(
                f"Variable '{name}': cannot convert {value!r} to number", field="variables"
            )
        return int(number) if number.is_integer() else number

    if type_ == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        text = stringify_value(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise NodeValidationError(
            f"Variable '{name}': cannot convert {value!r} to boolean", field="variables"
        )

    if type_ == "json":
        if not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise NodeValidationError(
                f"Variable '{name}': invalid JSON ({e.msg})", field="variables"
            ) from e

    return value


class SetVariableNode(BaseNode[SetVariableConfig]):
    """Set variable node.

    Example:
        {"variables": [{"name": "out", "value": "{{r.data}}", "type": "string"}]}
    """

    label = "Set Variable"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.SET_VARIABLE,
            display_name="Set Variable",
            description="Assign workflow variables",
            category=NodeCategory.DATA,
            fields=[
                NodeField(
                    name="variables",
                    display_name="Variables",
                    type=NodeFieldType.ARRAY,
                    description="List of {name, value, type}",
                    required=True,
                    templated=True,
                ),
            ],
            tags=["variable", "data"],
        )

    def validate_input(self, data: dict[str, Any]) -> SetVariableConfig:
        raw = data.get("variables") or []
        if not isinstance(raw, list):
            raise NodeValidationError("Variables must be a list", field="variables")

        variables = []
        for index, item in enumerate(raw):
            if not isinstance(item, dict):
                raise NodeValidationError(
                    f"Variable {index} must be an object", field="variables"
                )
            name = item.get("name")
            if not name or not isinstance(name, str):
                raise NodeValidationError(
                    f"Variable {index} requires a name", field="variables"
                )
            type_ = item.get("type") or None
            if type_ is not None and type_ not in VARIABLE_TYPES:
                raise NodeValidationError(
                    f"Variable '{name}': unknown type {type_}", field="variables"
                )
            variables.append(VariableAssignment(name=name, value=item.get("value"), type=type_))

        return SetVariableConfig(variables=variables)

    def _resolve_value(self, assignment: VariableAssignment, context: NodeContext) -> Any:
        value = assignment.value
        if assignment.type is None and isinstance(value, str):
            match = _SINGLE_TEMPLATE.match(value)
            if match and not match.group(1).strip().startswith("json "):
                return context.state.lookup(match.group(1))
        return context.resolve(value)

    async def execute(self, config: SetVariableConfig, context: NodeContext) -> Any:
        assigned: dict[str, Any] = {}
        for assignment in config.variables:
            value = self._resolve_value(assignment, context)
            if assignment.type is not None:
                value = coerce_variable(assignment.name, value, assignment.type)
            context.state.set_variable(assignment.name, value, assignment.type)
            assigned[assignment.name] = value

        context.log(
            LogLevel.INFO,
            f"Set {len(assigned)} variables",
            {"names": list(assigned)},
        )
        return assigned

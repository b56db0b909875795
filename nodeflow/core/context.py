"""Execution context: variables and node outputs shared during one run.

The context is owned by a single execution and accessed by one node at a time,
so it carries no locking.

Template expressions:
    ``{{name}}``       string form of the value, ``""`` when unresolved
    ``{{json name}}``  JSON encoding of the value, ``"null"`` when unresolved
    ``name`` may be a dotted/bracketed path such as ``r.data`` or ``node1.items[0]``.
"""

import copy
import json
import re
from datetime import datetime, timezone
from typing import Any

import structlog

from nodeflow.core.conditions import extract_json_path, stringify_value

logger = structlog.get_logger()

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
_HEAD_PATTERN = re.compile(r"^([^.\[]+)(.*)$")

_MISSING = object()


def infer_type(value: Any) -> str:
    """Type name recorded next to a variable."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ExecutionContext:
    """Variables and per-node outputs for one execution.

    Example:
        ctx = ExecutionContext()
        ctx.set_variable("r", {"data": "ok"})
        ctx.resolve_template("value={{r.data}}")  # "value=ok"
    """

    def __init__(
        self,
        execution_id: str | None = None,
        workflow_id: str | None = None,
    ) -> None:
        self.execution_id = execution_id
        self.workflow_id = workflow_id
        self._variables: dict[str, dict[str, Any]] = {}
        self._node_outputs: dict[str, dict[str, Any]] = {}

    # Variables

    def set_variable(self, name: str, value: Any, type: str | None = None) -> None:
        self._variables[name] = {
            "value": value,
            "type": type or infer_type(value),
            "timestamp": _now(),
        }

    def get_variable(self, name: str, default: Any = None) -> Any:
        entry = self._variables.get(name)
        return entry["value"] if entry is not None else default

    def get_variable_type(self, name: str) -> str | None:
        entry = self._variables.get(name)
        return entry["type"] if entry is not None else None

    def has_variable(self, name: str) -> bool:
        return name in self._variables

    def delete_variable(self, name: str) -> bool:
        return self._variables.pop(name, None) is not None

    def get_all_variables(self) -> dict[str, Any]:
        """Plain name -> value mapping of every variable."""
        return {name: entry["value"] for name, entry in self._variables.items()}

    # Node outputs

    def set_node_output(self, node_id: str, output: Any) -> None:
        self._node_outputs[node_id] = {"output": output, "timestamp": _now()}

    def get_node_output(self, node_id: str, default: Any = None) -> Any:
        entry = self._node_outputs.get(node_id)
        return entry["output"] if entry is not None else default

    def has_node_output(self, node_id: str) -> bool:
        return node_id in self._node_outputs

    def delete_node_output(self, node_id: str) -> bool:
        return self._node_outputs.pop(node_id, None) is not None

    def get_all_node_outputs(self) -> dict[str, Any]:
        return {node_id: entry["output"] for node_id, entry in self._node_outputs.items()}

    def clear(self) -> None:
        self._variables.clear()
        self._node_outputs.clear()

    # Lookup and templates

    def _lookup_name(self, name: str) -> Any:
        if name in self._variables:
            return self._variables[name]["value"]
        if name in self._node_outputs:
            return self._node_outputs[name]["output"]
        return _MISSING

    def lookup(self, expression: str, default: Any = None) -> Any:
        """Resolve a name or path: variables first, then node outputs.

        Exact names win over path interpretation, so a variable literally
        called ``a.b`` is found before ``a`` + ``.b``.
        """
        expression = expression.strip()
        if not expression:
            return default

        value = self._lookup_name(expression)
        if value is not _MISSING:
            return value

        match = _HEAD_PATTERN.match(expression)
        if match is None or not match.group(2):
            return default

        head, rest = match.group(1), match.group(2)
        base = self._lookup_name(head)
        if base is _MISSING:
            return default

        extracted = extract_json_path(base, rest.lstrip("."))
        return default if extracted is None else extracted

    def _render(self, expression: str) -> str:
        expression = expression.strip()

        if expression.startswith("json "):
            value = self.lookup(expression[5:])
            try:
                return json.dumps(value)
            except (TypeError, ValueError):
                logger.debug("template_json_serialization_failed", expression=expression)
                return "null"

        return stringify_value(self.lookup(expression))

    def resolve_template(self, text: Any) -> Any:
        """Substitute ``{{...}}`` spans. Non-string input is returned unchanged."""
        if not isinstance(text, str) or "{{" not in text:
            return text
        return TEMPLATE_PATTERN.sub(lambda m: self._render(m.group(1)), text)

    def resolve_template_in_object(self, value: Any) -> Any:
        """Apply resolve_template through nested dicts and lists."""
        if isinstance(value, str):
            return self.resolve_template(value)
        if isinstance(value, dict):
            return {k: self.resolve_template_in_object(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve_template_in_object(item) for item in value]
        if isinstance(value, tuple):
            return tuple(self.resolve_template_in_object(item) for item in value)
        return value

    # Snapshots

    def get_snapshot(self) -> dict[str, Any]:
        """Deep copy of the full state."""
        return {
            "executionId": self.execution_id,
            "workflowId": self.workflow_id,
            "variables": copy.deepcopy(self._variables),
            "nodeOutputs": copy.deepcopy(self._node_outputs),
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        """Replace the state with a deep copy of a snapshot."""
        self._variables = copy.deepcopy(snapshot.get("variables", {}))
        self._node_outputs = copy.deepcopy(snapshot.get("nodeOutputs", {}))
        self.execution_id = snapshot.get("executionId", self.execution_id)
        self.workflow_id = snapshot.get("workflowId", self.workflow_id)

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> "ExecutionContext":
        context = cls()
        context.restore(snapshot)
        return context

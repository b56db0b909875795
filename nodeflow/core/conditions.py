"""Condition evaluation for IF_CONDITION and FILTER nodes.

Evaluates ``{fieldPath, operator, value}`` conditions against JSON values.

Supported operators:
- equals / not_equals: string equality, numeric when both sides are numbers
- contains: substring (or list membership)
- greater_than / less_than: numeric comparison; non-numeric operands are False
- exists: field is present and not null
- regex: pattern search against the field's string form
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Literal

import structlog

logger = structlog.get_logger()

Operator = Literal[
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
    "exists",
    "regex",
]

OPERATORS: tuple[str, ...] = (
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
    "exists",
    "regex",
)

_PATH_SPLIT = re.compile(r"\.|\[|\]")


@dataclass(frozen=True)
class Condition:
    """A single comparison against a field of the evaluated value."""

    field_path: str
    operator: str
    value: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Condition":
        """Create from node configuration (camelCase keys)."""
        value = data.get("value", "")
        return cls(
            field_path=str(data.get("fieldPath", "")),
            operator=str(data.get("operator", "")),
            value="" if value is None else str(value),
        )


def _split_path(path: str) -> list[str]:
    path = path.strip()
    if path.startswith("$"):
        path = path[1:]
    parts = []
    for part in _PATH_SPLIT.split(path):
        part = part.strip()
        if not part:
            continue
        if len(part) >= 2 and part[0] == part[-1] and part[0] in "'\"":
            part = part[1:-1]
        parts.append(part)
    return parts


def extract_json_path(data: Any, path: str) -> Any:
    """Extract a value using dot/bracket notation.

    Accepts ``items[0].name``, ``data.items`` and JSONPath-style ``$.status``.
    Missing keys, out-of-range indexes and traversal through scalars yield None.

    Examples:
        >>> extract_json_path({"items": [{"name": "a"}]}, "items[0].name")
        'a'
        >>> extract_json_path({"status": "ok"}, "$.status")
        'ok'
    """
    if not path or data is None:
        return data

    current = data
    for part in _split_path(path):
        if current is None:
            return None

        if isinstance(current, (list, tuple)):
            try:
                index = int(part)
            except ValueError:
                return None
            if -len(current) <= index < len(current):
                current = current[index]
            else:
                return None
        elif isinstance(current, dict):
            current = current.get(part)
        else:
            return None

    return current


def stringify_value(value: Any) -> str:
    """String form of a JSON value as used in comparisons and templates."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


def to_number(value: Any) -> float | None:
    """Numeric coercion; None when the value is not a finite number."""
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _values_equal(actual: Any, expected: str) -> bool:
    if actual is None:
        return False
    if isinstance(actual, str):
        return actual == expected
    if not isinstance(actual, bool):
        left, right = to_number(actual), to_number(expected)
        if left is not None and right is not None:
            return left == right
    return stringify_value(actual) == expected


def evaluate_condition(data: Any, condition: Condition) -> bool:
    """Evaluate a single condition against data.

    Never raises: evaluation errors and unknown operators evaluate to False.
    """
    actual = extract_json_path(data, condition.field_path)
    expected = condition.value
    operator = condition.operator

    try:
        if operator == "equals":
            return _values_equal(actual, expected)

        if operator == "not_equals":
            return not _values_equal(actual, expected)

        if operator == "contains":
            if actual is None:
                return False
            if isinstance(actual, (list, tuple)):
                return any(_values_equal(item, expected) for item in actual)
            return expected in stringify_value(actual)

        if operator in ("greater_than", "less_than"):
            left, right = to_number(actual), to_number(expected)
            if left is None or right is None:
                return False
            return left > right if operator == "greater_than" else left < right

        if operator == "exists":
            return actual is not None

        if operator == "regex":
            if actual is None:
                return False
            try:
                return re.search(expected, stringify_value(actual)) is not None
            except re.error:
                return False

    except Exception as e:
        logger.warning(
            "condition_evaluation_error",
            field_path=condition.field_path,
            operator=operator,
            error=str(e),
        )
        return False

    logger.warning("condition_unknown_operator", operator=operator)
    return False


def evaluate_conditions(
    data: Any,
    conditions: Iterable[Condition],
    combine: str = "AND",
) -> bool:
    """Evaluate conditions combined with AND/OR. No conditions is True."""
    results = [evaluate_condition(data, c) for c in conditions]
    if not results:
        return True
    if combine.upper() == "OR":
        return any(results)
    return all(results)

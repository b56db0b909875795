"""Delay node.

Waits for a fixed duration or until a specific time before passing control to
the next node.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeValidationError
from nodeflow.nodes.helpers import coerce_float

UNIT_MS = {
    "milliseconds": 1,
    "seconds": 1000,
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
}

# Used when the configured unit is not recognised
FALLBACK_DELAY_MS = 60_000


@dataclass
class DelayConfig:
    """Configuration for delay node."""

    delay_type: str = "fixed"
    duration_value: float = 1
    duration_unit: str = "minutes"
    specific_time: datetime | None = None


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise NodeValidationError(
                f"Invalid specific time: {value}", field="specificTime"
            ) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_delay_ms(config: DelayConfig, now: datetime | None = None) -> float:
    """Milliseconds to wait; a target time in the past yields 0."""
    if config.delay_type == "specific_time" and config.specific_time is not None:
        now = now or datetime.now(timezone.utc)
        return max(0.0, (config.specific_time - now).total_seconds() * 1000)

    factor = UNIT_MS.get(config.duration_unit)
    if factor is None:
        return FALLBACK_DELAY_MS
    return config.duration_value * factor


class DelayNode(BaseNode[DelayConfig]):
    """Delay node."""

    label = "Delay"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.DELAY,
            display_name="Delay",
            description="Wait for a duration or until a specific time",
            category=NodeCategory.UTILITY,
            fields=[
                NodeField(
                    name="delayType",
                    display_name="Delay Type",
                    type=NodeFieldType.STRING,
                    default="fixed",
                    options=["fixed", "specific_time"],
                ),
                NodeField(
                    name="durationValue",
                    display_name="Duration",
                    type=NodeFieldType.NUMBER,
                    default=1,
                ),
                NodeField(
                    name="durationUnit",
                    display_name="Unit",
                    type=NodeFieldType.STRING,
                    default="minutes",
                    options=list(UNIT_MS),
                ),
                NodeField(
                    name="specificTime",
                    display_name="Until",
                    type=NodeFieldType.STRING,
                    description="ISO 8601 timestamp",
                ),
            ],
            tags=["delay", "wait", "utility"],
        )

    def validate_input(self, data: dict[str, Any]) -> DelayConfig:
        delay_type = data.get("delayType") or "fixed"
        specific_time = None
        if delay_type == "specific_time" and data.get("specificTime"):
            specific_time = _parse_time(data["specificTime"])

        duration_value = coerce_float(data.get("durationValue"), "durationValue", 1.0)
        if duration_value < 0:
            raise NodeValidationError("Duration must not be negative", field="durationValue")

        return DelayConfig(
            delay_type=delay_type,
            duration_value=duration_value,
            duration_unit=data.get("durationUnit") or "minutes",
            specific_time=specific_time,
        )

    async def execute(self, config: DelayConfig, context: NodeContext) -> Any:
        delay_ms = compute_delay_ms(config)
        await asyncio.sleep(delay_ms / 1000)

        context.log(LogLevel.INFO, f"Delay completed after {delay_ms:g}ms")
        return {
            "delayType": config.delay_type,
            "durationMs": delay_ms,
            "completedAt": datetime.now(timezone.utc).isoformat(),
        }

"""Trigger nodes.

Triggers are graph roots. They do no work beyond stamping a "triggered"
marker; the webhook and schedule triggers expose the payload that started
the execution as ``data`` so downstream nodes can reference it.
"""

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


class TriggerNode(BaseNode[dict[str, Any]]):
    """Common behavior of all trigger nodes."""

    node_type_value: NodeType
    description: str = ""

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=self.node_type_value,
            display_name=self.label,
            description=self.description,
            category=NodeCategory.TRIGGER,
            fields=self.fields(),
            tags=["trigger"],
        )

    def fields(self) -> list[NodeField]:
        return []

    async def execute(self, config: dict[str, Any], context: NodeContext) -> Any:
        output = {
            "triggered": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "triggerType": context.trigger_type.value,
            "data": context.trigger_data,
        }
        context.log(LogLevel.INFO, f"{self.label} node executed")
        return output


class InitialNode(TriggerNode):
    """Placeholder root created with every new workflow."""

    label = "Initial"
    node_type_value = NodeType.INITIAL
    description = "Starting point of a workflow"


class ManualTriggerNode(TriggerNode):
    """Root for runs started by a user."""

    label = "Manual Trigger"
    node_type_value = NodeType.MANUAL_TRIGGER
    description = "Start the workflow manually"


class WebhookTriggerNode(TriggerNode):
    """Root for runs started by an inbound webhook call."""

    label = "Webhook Trigger"
    node_type_value = NodeType.WEBHOOK_TRIGGER
    description = "Start the workflow when its webhook URL receives a request"


SCHEDULE_TYPES = ("cron", "interval", "specific_time")
INTERVAL_UNITS = ("minutes", "hours", "days")


class ScheduleTriggerNode(TriggerNode):
    """Root for runs started by a schedule tick."""

    label = "Schedule Trigger"
    node_type_value = NodeType.SCHEDULE_TRIGGER
    description = "Start the workflow on a schedule"

    def fields(self) -> list[NodeField]:
        return [
            NodeField(
                name="scheduleType",
                display_name="Schedule Type",
                type=NodeFieldType.STRING,
                default="cron",
                options=list(SCHEDULE_TYPES),
            ),
            NodeField(
                name="cronExpression",
                display_name="Cron Expression",
                type=NodeFieldType.STRING,
            ),
            NodeField(
                name="intervalValue",
                display_name="Interval",
                type=NodeFieldType.NUMBER,
            ),
            NodeField(
                name="intervalUnit",
                display_name="Interval Unit",
                type=NodeFieldType.STRING,
                default="minutes",
                options=list(INTERVAL_UNITS),
            ),
            NodeField(
                name="specificTime",
                display_name="Run At",
                type=NodeFieldType.STRING,
            ),
            NodeField(
                name="timezone",
                display_name="Timezone",
                type=NodeFieldType.STRING,
                default="UTC",
            ),
        ]

    def validate_input(self, data: dict[str, Any]) -> dict[str, Any]:
        schedule_type = data.get("scheduleType") or "cron"
        if schedule_type not in SCHEDULE_TYPES:
            raise NodeValidationError(
                f"Unknown schedule type: {schedule_type}", field="scheduleType"
            )
        return data

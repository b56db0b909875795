"""Trigger nodes - workflow roots."""

from nodeflow.nodes.triggers.triggers import (
    InitialNode,
    ManualTriggerNode,
    ScheduleTriggerNode,
    WebhookTriggerNode,
)

__all__ = [
    "InitialNode",
    "ManualTriggerNode",
    "ScheduleTriggerNode",
    "WebhookTriggerNode",
]

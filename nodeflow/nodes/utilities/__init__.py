"""Utility nodes - HTTP, timing and control flow."""

from nodeflow.nodes.utilities.delay import DelayNode
from nodeflow.nodes.utilities.http_request import HttpRequestNode
from nodeflow.nodes.utilities.if_condition import IfConditionNode
from nodeflow.nodes.utilities.merge import MergeNode

__all__ = [
    "DelayNode",
    "HttpRequestNode",
    "IfConditionNode",
    "MergeNode",
]

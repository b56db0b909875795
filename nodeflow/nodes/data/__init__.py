"""Data nodes - variables, JSON, filtering and code."""

from nodeflow.nodes.data.code_execute import CodeExecuteNode
from nodeflow.nodes.data.filter import FilterNode
from nodeflow.nodes.data.json_parse import JsonNode
from nodeflow.nodes.data.set_variable import SetVariableNode

__all__ = [
    "CodeExecuteNode",
    "FilterNode",
    "JsonNode",
    "SetVariableNode",
]

"""AI nodes - API_KEY credential required."""

from nodeflow.nodes.ai.anthropic import AnthropicChatNode
from nodeflow.nodes.ai.gemini import GoogleGeminiChatNode
from nodeflow.nodes.ai.openai import OpenAIChatNode

__all__ = [
    "AnthropicChatNode",
    "GoogleGeminiChatNode",
    "OpenAIChatNode",
]

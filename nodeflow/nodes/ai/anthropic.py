"""Anthropic chat node.

Calls Anthropic Claude models for text generation.
"""

from nodeflow.models.node import NodeType
from nodeflow.nodes.ai.chat import ChatCompletion, ChatConfig, ChatNode
from nodeflow.nodes.base import NodeContext
from nodeflow.nodes.helpers import send_request

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"

# The messages API requires max_tokens
DEFAULT_MAX_TOKENS = 1024


class AnthropicChatNode(ChatNode):
    """Anthropic messages API node.

    Requires an API_KEY credential.
    """

    label = "Anthropic"
    node_type_value = NodeType.ANTHROPIC_CHAT
    default_model = "claude-3-5-sonnet-latest"
    models = [
        "claude-3-5-sonnet-latest",
        "claude-3-5-haiku-latest",
        "claude-3-opus-latest",
    ]
    max_temperature = 1.0

    async def complete(
        self,
        api_key: str,
        config: ChatConfig,
        context: NodeContext,
    ) -> ChatCompletion:
        base_url = context.settings.anthropic_base_url if context.settings else DEFAULT_BASE_URL

        body: dict = {
            "model": config.model,
            "messages": [{"role": "user", "content": config.user_prompt}],
            "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if config.system_prompt:
            body["system"] = config.system_prompt
        if config.temperature is not None:
            body["temperature"] = config.temperature

        response = await send_request(
            context,
            "POST",
            f"{base_url.rstrip('/')}/messages",
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            json_body=body,
        )
        data = response.json()

        # Extract text from content blocks
        text = ""
        for block in data["content"]:
            if block.get("type") == "text":
                text += block.get("text", "")

        usage = data.get("usage") or {}
        prompt_tokens = usage.get("input_tokens", 0)
        completion_tokens = usage.get("output_tokens", 0)

        return ChatCompletion(
            text=text,
            model=data.get("model", config.model),
            usage={
                "promptTokens": prompt_tokens,
                "completionTokens": completion_tokens,
                "totalTokens": prompt_tokens + completion_tokens,
            },
        )

"""OpenAI chat node.

Calls OpenAI GPT models for text generation.
"""

from nodeflow.models.node import NodeType
from nodeflow.nodes.ai.chat import ChatCompletion, ChatConfig, ChatNode
from nodeflow.nodes.base import NodeContext
from nodeflow.nodes.helpers import send_request

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIChatNode(ChatNode):
    """OpenAI chat completions node.

    Requires an API_KEY credential.
    """

    label = "OpenAI"
    node_type_value = NodeType.OPENAI_CHAT
    default_model = "gpt-4o"
    models = ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"]

    async def complete(
        self,
        api_key: str,
        config: ChatConfig,
        context: NodeContext,
    ) -> ChatCompletion:
        base_url = context.settings.openai_base_url if context.settings else DEFAULT_BASE_URL

        messages = []
        if config.system_prompt:
            messages.append({"role": "system", "content": config.system_prompt})
        messages.append({"role": "user", "content": config.user_prompt})

        body: dict = {"model": config.model, "messages": messages}
        if config.temperature is not None:
            body["temperature"] = config.temperature
        if config.max_tokens is not None:
            body["max_tokens"] = config.max_tokens

        response = await send_request(
            context,
            "POST",
            f"{base_url.rstrip('/')}/chat/completions",
            headers={"Authorization": f"Bearer {api_key}"},
            json_body=body,
        )
        data = response.json()
        usage = data.get("usage") or {}

        return ChatCompletion(
            text=data["choices"][0]["message"]["content"] or "",
            model=data.get("model", config.model),
            usage={
                "promptTokens": usage.get("prompt_tokens", 0),
                "completionTokens": usage.get("completion_tokens", 0),
                "totalTokens": usage.get("total_tokens", 0),
            },
        )

"""Google Gemini chat node."""

from nodeflow.models.node import NodeType
from nodeflow.nodes.ai.chat import ChatCompletion, ChatConfig, ChatNode
from nodeflow.nodes.base import NodeContext
from nodeflow.nodes.helpers import send_request

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GoogleGeminiChatNode(ChatNode):
    """Gemini generateContent node.

    Requires an API_KEY credential.
    """

    label = "Google Gemini"
    node_type_value = NodeType.GOOGLE_GEMINI_CHAT
    default_model = "gemini-1.5-flash"
    models = ["gemini-1.5-flash", "gemini-1.5-pro", "gemini-2.0-flash"]

    async def complete(
        self,
        api_key: str,
        config: ChatConfig,
        context: NodeContext,
    ) -> ChatCompletion:
        base_url = context.settings.gemini_base_url if context.settings else DEFAULT_BASE_URL

        body: dict = {
            "contents": [{"role": "user", "parts": [{"text": config.user_prompt}]}],
        }
        if config.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": config.system_prompt}]}

        generation_config = {}
        if config.temperature is not None:
            generation_config["temperature"] = config.temperature
        if config.max_tokens is not None:
            generation_config["maxOutputTokens"] = config.max_tokens
        if generation_config:
            body["generationConfig"] = generation_config

        response = await send_request(
            context,
            "POST",
            f"{base_url.rstrip('/')}/models/{config.model}:generateContent",
            headers={"x-goog-api-key": api_key},
            json_body=body,
        )
        data = response.json()

        parts = data["candidates"][0]["content"].get("parts", [])
        usage = data.get("usageMetadata") or {}

        return ChatCompletion(
            text="".join(part.get("text", "") for part in parts),
            model=data.get("modelVersion", config.model),
            usage={
                "promptTokens": usage.get("promptTokenCount", 0),
                "completionTokens": usage.get("candidatesTokenCount", 0),
                "totalTokens": usage.get("totalTokenCount", 0),
            },
        )

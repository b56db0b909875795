"""Shared behavior of the AI chat nodes.

Each provider node validates the same configuration, loads an API_KEY
credential and maps the provider's response to ``{text, model, usage}``.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any

from nodeflow.models.credential import CredentialType
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import (
    BaseNode,
    NodeContext,
    NodeExecutionError,
    NodeValidationError,
    credential_secret,
)
from nodeflow.nodes.helpers import ClientHttpError, coerce_float, coerce_int


@dataclass
class ChatConfig:
    """Configuration shared by chat nodes."""

    credential_id: str
    model: str
    user_prompt: str
    system_prompt: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class ChatCompletion:
    """Normalized provider response."""

    text: str
    model: str
    usage: dict[str, int]


class ChatNode(BaseNode[ChatConfig]):
    """Base class for chat completion nodes."""

    node_type_value: NodeType
    default_model: str
    models: list[str] = []
    max_temperature: float = 2.0

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=self.node_type_value,
            display_name=f"{self.label} Chat",
            description=f"Generate text using {self.label} models",
            category=NodeCategory.AI,
            credential_types=[CredentialType.API_KEY.value],
            fields=[
                NodeField(
                    name="credentialId",
                    display_name="API Key",
                    type=NodeFieldType.CREDENTIAL,
                    required=True,
                ),
                NodeField(
                    name="model",
                    display_name="Model",
                    type=NodeFieldType.STRING,
                    default=self.default_model,
                    options=self.models or None,
                ),
                NodeField(
                    name="systemPrompt",
                    display_name="System Prompt",
                    type=NodeFieldType.STRING,
                    templated=True,
                ),
                NodeField(
                    name="userPrompt",
                    display_name="User Prompt",
                    type=NodeFieldType.STRING,
                    required=True,
                    templated=True,
                ),
                NodeField(
                    name="temperature",
                    display_name="Temperature",
                    type=NodeFieldType.NUMBER,
                    description=f"Sampling temperature (0-{self.max_temperature:g})",
                ),
                NodeField(
                    name="maxTokens",
                    display_name="Max Tokens",
                    type=NodeFieldType.NUMBER,
                ),
            ],
            tags=["ai", "llm", "text-generation"],
        )

    def validate_input(self, data: dict[str, Any]) -> ChatConfig:
        user_prompt = data.get("userPrompt")
        if not user_prompt or not isinstance(user_prompt, str):
            raise NodeValidationError("User prompt is required", field="userPrompt")

        temperature = coerce_float(data.get("temperature"), "temperature")
        if temperature is not None and not 0 <= temperature <= self.max_temperature:
            raise NodeValidationError(
                f"Temperature must be between 0 and {self.max_temperature:g}",
                field="temperature",
            )

        max_tokens = coerce_int(data.get("maxTokens"), "maxTokens")
        if max_tokens is not None and max_tokens < 1:
            raise NodeValidationError("Max tokens must be at least 1", field="maxTokens")

        return ChatConfig(
            credential_id=data.get("credentialId") or "",
            model=data.get("model") or self.default_model,
            user_prompt=user_prompt,
            system_prompt=data.get("systemPrompt") or None,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    @abstractmethod
    async def complete(
        self,
        api_key: str,
        config: ChatConfig,
        context: NodeContext,
    ) -> ChatCompletion:
        """Call the provider with resolved prompts."""
        pass

    async def execute(self, config: ChatConfig, context: NodeContext) -> Any:
        credential = await context.get_credential(
            config.credential_id, [CredentialType.API_KEY], self.label
        )
        api_key = credential_secret(credential, "apiKey", "api_key")

        resolved = ChatConfig(
            credential_id=config.credential_id,
            model=config.model,
            user_prompt=context.resolve(config.user_prompt),
            system_prompt=context.resolve(config.system_prompt),
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

        try:
            completion = await self.complete(api_key, resolved, context)
        except ClientHttpError as e:
            if e.status_code in (401, 403):
                raise NodeExecutionError(
                    f"Invalid {self.label} API key",
                    error_code="AUTH_ERROR",
                ) from e
            raise
        except (KeyError, IndexError, TypeError) as e:
            raise NodeExecutionError(
                f"Unexpected {self.label} response format",
                error_code="API_ERROR",
            ) from e

        context.log(LogLevel.INFO, f"{self.label} {completion.model} generated response")
        return {
            "text": completion.text,
            "model": completion.model,
            "usage": completion.usage,
        }

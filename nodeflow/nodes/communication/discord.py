"""Discord send message node.

Posts either through an incoming webhook URL or as a bot into a channel.
"""

import json
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
from nodeflow.nodes.base import BaseNode, NodeContext, NodeValidationError, credential_secret
from nodeflow.nodes.helpers import parse_response_body, send_request

DISCORD_API_URL = "https://discord.com/api"
AUTH_METHODS = ("webhook", "bot_token")


@dataclass
class DiscordConfig:
    """Configuration for Discord node."""

    auth_method: str
    message_content: str
    webhook_url: str | None = None
    credential_id: str | None = None
    channel: str | None = None
    username: str | None = None
    avatar_url: str | None = None
    embed_json: str | None = None


class DiscordSendMessageNode(BaseNode[DiscordConfig]):
    """Send a Discord message.

    ``webhook`` auth needs only ``webhookUrl``. ``bot_token`` auth needs a
    BEARER_TOKEN credential and a channel id.
    """

    label = "Discord"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.DISCORD_SEND_MESSAGE,
            display_name="Discord: Send Message",
            description="Send a message to a Discord channel",
            category=NodeCategory.COMMUNICATION,
            credential_types=[CredentialType.BEARER_TOKEN.value],
            fields=[
                NodeField(
                    name="authMethod",
                    display_name="Authentication",
                    type=NodeFieldType.STRING,
                    default="webhook",
                    options=list(AUTH_METHODS),
                ),
                NodeField(
                    name="webhookUrl",
                    display_name="Webhook URL",
                    type=NodeFieldType.STRING,
                ),
                NodeField(
                    name="credentialId",
                    display_name="Bot Token",
                    type=NodeFieldType.CREDENTIAL,
                ),
                NodeField(
                    name="channel",
                    display_name="Channel ID",
                    type=NodeFieldType.STRING,
                    templated=True,
                ),
                NodeField(
                    name="messageContent",
                    display_name="Message",
                    type=NodeFieldType.STRING,
                    required=True,
                    templated=True,
                ),
                NodeField(name="username", display_name="Username", type=NodeFieldType.STRING),
                NodeField(name="avatarUrl", display_name="Avatar URL", type=NodeFieldType.STRING),
                NodeField(
                    name="embedJson",
                    display_name="Embeds",
                    type=NodeFieldType.JSON,
                    description="Embed JSON array; ignored when invalid",
                    templated=True,
                ),
            ],
            tags=["discord", "chat", "messaging"],
        )

    def validate_input(self, data: dict[str, Any]) -> DiscordConfig:
        auth_method = data.get("authMethod") or "webhook"
        if auth_method not in AUTH_METHODS:
            raise NodeValidationError(
                f"Unknown auth method: {auth_method}", field="authMethod"
            )

        if auth_method == "webhook":
            if not data.get("webhookUrl"):
                raise NodeValidationError(
                    "Discord webhook node requires a webhook URL", field="webhookUrl"
                )
        else:
            if not data.get("credentialId"):
                raise NodeValidationError(
                    "Discord bot node requires a credential", field="credentialId"
                )
            if not data.get("channel"):
                raise NodeValidationError(
                    "Discord bot node requires a channel ID", field="channel"
                )

        return DiscordConfig(
            auth_method=auth_method,
            message_content=data.get("messageContent") or "",
            webhook_url=data.get("webhookUrl"),
            credential_id=data.get("credentialId"),
            channel=data.get("channel"),
            username=data.get("username") or None,
            avatar_url=data.get("avatarUrl") or None,
            embed_json=data.get("embedJson") or None,
        )

    async def execute(self, config: DiscordConfig, context: NodeContext) -> Any:
        headers: dict[str, str] = {}

        if config.auth_method == "webhook":
            url = str(config.webhook_url)
        else:
            credential = await context.get_credential(
                config.credential_id, [CredentialType.BEARER_TOKEN], self.label
            )
            token = credential_secret(credential, "token", "accessToken")
            headers["Authorization"] = f"Bot {token}"
            channel = context.resolve(config.channel)
            url = f"{DISCORD_API_URL}/channels/{channel}/messages"

        payload: dict[str, Any] = {"content": context.resolve(config.message_content)}
        if config.username:
            payload["username"] = config.username
        if config.avatar_url:
            payload["avatar_url"] = config.avatar_url
        if config.embed_json:
            try:
                payload["embeds"] = json.loads(context.resolve(config.embed_json))
            except json.JSONDecodeError:
                context.log(LogLevel.WARN, "Invalid embed JSON ignored")

        response = await send_request(
            context, "POST", url, headers=headers, json_body=payload
        )

        context.log(LogLevel.INFO, "Discord message sent", {"authMethod": config.auth_method})
        data = parse_response_body(response)
        return data if data else {"sent": True, "status": response.status_code}

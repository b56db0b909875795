"""Slack send message node."""

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
from nodeflow.nodes.helpers import parse_json_config, parse_response_body, send_request

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


@dataclass
class SlackConfig:
    """Configuration for Slack node."""

    credential_id: str
    channel: str
    message_type: str = "text"
    message_text: str | None = None
    blocks: list[Any] | None = None


class SlackSendMessageNode(BaseNode[SlackConfig]):
    """Post a message to a Slack channel.

    Requires an API_KEY or BEARER_TOKEN credential holding a bot token.
    """

    label = "Slack"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.SLACK_SEND_MESSAGE,
            display_name="Slack: Send Message",
            description="Send a message to a Slack channel",
            category=NodeCategory.COMMUNICATION,
            credential_types=[
                CredentialType.API_KEY.value,
                CredentialType.BEARER_TOKEN.value,
            ],
            fields=[
                NodeField(
                    name="credentialId",
                    display_name="Bot Token",
                    type=NodeFieldType.CREDENTIAL,
                    required=True,
                ),
                NodeField(
                    name="channel",
                    display_name="Channel",
                    type=NodeFieldType.STRING,
                    required=True,
                    templated=True,
                ),
                NodeField(
                    name="messageType",
                    display_name="Message Type",
                    type=NodeFieldType.STRING,
                    default="text",
                    options=["text", "blocks"],
                ),
                NodeField(
                    name="messageText",
                    display_name="Message",
                    type=NodeFieldType.STRING,
                    templated=True,
                ),
                NodeField(
                    name="blocksJson",
                    display_name="Blocks",
                    type=NodeFieldType.JSON,
                    description="Block Kit JSON array",
                    templated=True,
                ),
            ],
            tags=["slack", "chat", "messaging"],
        )

    def validate_input(self, data: dict[str, Any]) -> SlackConfig:
        channel = data.get("channel")
        if not channel:
            raise NodeValidationError("Channel is required", field="channel")

        message_type = data.get("messageType") or "text"
        if message_type not in ("text", "blocks"):
            raise NodeValidationError(
                f"Unknown message type: {message_type}", field="messageType"
            )

        blocks = None
        if message_type == "blocks":
            blocks_json = data.get("blocksJson")
            if not blocks_json:
                raise NodeValidationError("Blocks are required", field="blocksJson")
            blocks = parse_json_config(blocks_json, "blocksJson", "JSON in blocks")
            if not isinstance(blocks, list):
                raise NodeValidationError("Blocks must be a JSON array", field="blocksJson")
        elif not data.get("messageText"):
            raise NodeValidationError("Message text is required", field="messageText")

        return SlackConfig(
            credential_id=data.get("credentialId") or "",
            channel=str(channel),
            message_type=message_type,
            message_text=data.get("messageText"),
            blocks=blocks,
        )

    async def execute(self, config: SlackConfig, context: NodeContext) -> Any:
        credential = await context.get_credential(
            config.credential_id,
            [CredentialType.API_KEY, CredentialType.BEARER_TOKEN],
            self.label,
        )
        token = credential_secret(credential, "token", "apiKey", "accessToken")

        channel = context.resolve(config.channel)
        payload: dict[str, Any] = {"channel": channel}
        if config.message_type == "text":
            payload["text"] = context.resolve(config.message_text)
        else:
            payload["blocks"] = context.resolve(config.blocks)

        response = await send_request(
            context,
            "POST",
            SLACK_POST_MESSAGE_URL,
            headers={"Authorization": f"Bearer {token}"},
            json_body=payload,
        )
        data = parse_response_body(response)

        # Slack reports most failures with HTTP 200 and ok=false
        if isinstance(data, dict) and data.get("ok") is False:
            raise NodeExecutionError(
                f"Slack API error: {data.get('error', 'unknown_error')}",
                error_code="API_ERROR",
            )

        context.log(LogLevel.INFO, "Slack message sent", {"channel": channel})
        return data

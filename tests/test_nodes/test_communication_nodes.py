"""Tests for communication nodes."""

import base64
import json
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs

import httpx
import pytest

from nodeflow.core.context import ExecutionContext
from nodeflow.models.credential import CredentialType
from nodeflow.models.node import NodeType
from nodeflow.nodes.base import NodeValidationError
from nodeflow.nodes.communication import (
    DiscordSendMessageNode,
    EmailSendNode,
    SlackSendMessageNode,
)

from conftest import decrypted_credential, make_node_context


def recording(response: httpx.Response):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return response

    return httpx.MockTransport(handler), seen


class TestSlackSendMessageNode:
    """Tests for SlackSendMessageNode."""

    CREDENTIALS = {"cred-1": decrypted_credential(CredentialType.BEARER_TOKEN, {"token": "xoxb-1"})}

    @pytest.mark.asyncio
    async def test_text_message(self):
        transport, seen = recording(httpx.Response(200, json={"ok": True, "ts": "1.2"}))
        state = ExecutionContext()
        state.set_variable("name", "Ada")
        context = make_node_context(
            NodeType.SLACK_SEND_MESSAGE,
            state=state,
            credentials=self.CREDENTIALS,
            transport=transport,
        )

        result = await SlackSendMessageNode().run(
            {"credentialId": "cred-1", "channel": "#general", "messageText": "Hi {{name}}"},
            context,
        )

        assert result.success
        assert result.output == {"ok": True, "ts": "1.2"}
        assert str(seen[0].url) == "https://slack.com/api/chat.postMessage"
        assert seen[0].headers["Authorization"] == "Bearer xoxb-1"
        assert json.loads(seen[0].content) == {"channel": "#general", "text": "Hi Ada"}

    @pytest.mark.asyncio
    async def test_ok_false_is_an_error(self):
        transport, _ = recording(httpx.Response(200, json={"ok": False, "error": "channel_not_found"}))
        context = make_node_context(
            NodeType.SLACK_SEND_MESSAGE,
            node_id="s",
            credentials=self.CREDENTIALS,
            transport=transport,
        )

        result = await SlackSendMessageNode().run(
            {"credentialId": "cred-1", "channel": "#nope", "messageText": "x"}, context
        )

        assert result.error == "Slack node (s): Slack API error: channel_not_found"

    @pytest.mark.asyncio
    async def test_blocks_message(self):
        transport, seen = recording(httpx.Response(200, json={"ok": True}))
        context = make_node_context(
            NodeType.SLACK_SEND_MESSAGE, credentials=self.CREDENTIALS, transport=transport
        )

        await SlackSendMessageNode().run(
            {
                "credentialId": "cred-1",
                "channel": "C1",
                "messageType": "blocks",
                "blocksJson": '[{"type": "divider"}]',
            },
            context,
        )

        assert json.loads(seen[0].content)["blocks"] == [{"type": "divider"}]

    @pytest.mark.parametrize(
        "data",
        [
            {"messageText": "x"},
            {"channel": "C1"},
            {"channel": "C1", "messageType": "blocks", "blocksJson": "{not json"},
            {"channel": "C1", "messageType": "blocks", "blocksJson": '{"type": "divider"}'},
        ],
    )
    def test_invalid_config(self, data):
        with pytest.raises(NodeValidationError):
            SlackSendMessageNode().validate_input(data)


class TestDiscordSendMessageNode:
    """Tests for DiscordSendMessageNode."""

    @pytest.mark.asyncio
    async def test_webhook_message(self):
        transport, seen = recording(httpx.Response(204))
        context = make_node_context(NodeType.DISCORD_SEND_MESSAGE, transport=transport)

        result = await DiscordSendMessageNode().run(
            {
                "webhookUrl": "https://discord.com/api/webhooks/1/abc",
                "messageContent": "deployed",
                "username": "bot",
                "embedJson": "[not json",
            },
            context,
        )

        assert result.success
        assert result.output == {"sent": True, "status": 204}
        assert json.loads(seen[0].content) == {"content": "deployed", "username": "bot"}
        assert any(log.message == "Invalid embed JSON ignored" for log in result.logs)

    @pytest.mark.asyncio
    async def test_bot_message(self):
        transport, seen = recording(httpx.Response(200, json={"id": "m1"}))
        credentials = {"cred-1": decrypted_credential(CredentialType.BEARER_TOKEN, "bot-token")}
        context = make_node_context(
            NodeType.DISCORD_SEND_MESSAGE, credentials=credentials, transport=transport
        )

        result = await DiscordSendMessageNode().run(
            {
                "authMethod": "bot_token",
                "credentialId": "cred-1",
                "channel": "123",
                "messageContent": "hi",
            },
            context,
        )

        assert result.output == {"id": "m1"}
        assert str(seen[0].url) == "https://discord.com/api/channels/123/messages"
        assert seen[0].headers["Authorization"] == "Bot bot-token"

    def test_webhook_url_required(self):
        with pytest.raises(NodeValidationError):
            DiscordSendMessageNode().validate_input({"messageContent": "hi"})


class TestEmailSendNode:
    """Tests for EmailSendNode."""

    BASE = {
        "credentialId": "cred-1",
        "from": "noreply@example.com",
        "to": "a@example.com, b@example.com",
        "subject": "Report",
        "body": "Done",
    }

    @pytest.mark.asyncio
    async def test_sendgrid(self):
        transport, seen = recording(httpx.Response(202, headers={"x-message-id": "msg-1"}))
        credentials = {"cred-1": decrypted_credential(CredentialType.API_KEY, {"apiKey": "SG.key"})}
        context = make_node_context(NodeType.EMAIL_SEND, credentials=credentials, transport=transport)

        result = await EmailSendNode().run({**self.BASE, "provider": "sendgrid"}, context)

        assert result.output == {"sent": True, "provider": "sendgrid", "status": 202, "messageId": "msg-1"}
        body = json.loads(seen[0].content)
        assert body["personalizations"][0]["to"] == [
            {"email": "a@example.com"},
            {"email": "b@example.com"},
        ]
        assert body["from"] == {"email": "noreply@example.com"}

    @pytest.mark.asyncio
    async def test_mailgun(self):
        transport, seen = recording(httpx.Response(200, json={"id": "<m@mg>", "message": "Queued"}))
        credentials = {
            "cred-1": decrypted_credential(
                CredentialType.API_KEY, {"apiKey": "key-1", "domain": "mg.example.com"}
            )
        }
        context = make_node_context(NodeType.EMAIL_SEND, credentials=credentials, transport=transport)

        result = await EmailSendNode().run({**self.BASE, "provider": "mailgun"}, context)

        assert result.output["message"] == "Queued"
        request = seen[0]
        assert str(request.url) == "https://api.mailgun.net/v3/mg.example.com/messages"
        assert request.headers["Authorization"] == "Basic " + base64.b64encode(b"api:key-1").decode()
        form = parse_qs(request.content.decode())
        assert form["to"] == ["a@example.com, b@example.com"]

    @pytest.mark.asyncio
    async def test_smtp(self):
        credentials = {
            "cred-1": decrypted_credential(
                CredentialType.BASIC_AUTH,
                {"host": "smtp.example.com", "port": 465, "username": "u", "password": "p"},
            )
        }
        context = make_node_context(NodeType.EMAIL_SEND, credentials=credentials)

        with patch("nodeflow.nodes.communication.email_send.aiosmtplib.send", new=AsyncMock()) as send:
            result = await EmailSendNode().run(
                {**self.BASE, "provider": "smtp", "bcc": "c@example.com"}, context
            )

        assert result.output["recipients"] == ["a@example.com", "b@example.com", "c@example.com"]
        kwargs = send.await_args.kwargs
        assert kwargs["hostname"] == "smtp.example.com"
        assert kwargs["use_tls"] is True
        assert kwargs["start_tls"] is False

    @pytest.mark.asyncio
    async def test_provider_credential_types(self):
        credentials = {"cred-1": decrypted_credential(CredentialType.DATABASE, {"host": "x"})}
        context = make_node_context(NodeType.EMAIL_SEND, credentials=credentials)

        result = await EmailSendNode().run({**self.BASE, "provider": "smtp"}, context)

        assert not result.success
        assert "expected BASIC_AUTH or CUSTOM" in result.error

    @pytest.mark.asyncio
    async def test_empty_recipients_after_templates(self):
        credentials = {"cred-1": decrypted_credential(CredentialType.API_KEY, "SG.key")}
        context = make_node_context(NodeType.EMAIL_SEND, credentials=credentials)

        result = await EmailSendNode().run({**self.BASE, "to": "{{nobody}}"}, context)

        assert "No recipients" in result.error

    def test_unknown_provider(self):
        with pytest.raises(NodeValidationError):
            EmailSendNode().validate_input({**self.BASE, "provider": "pigeon"})

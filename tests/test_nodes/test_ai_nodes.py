"""Tests for AI chat nodes."""

import json

import httpx
import pytest

from nodeflow.core.context import ExecutionContext
from nodeflow.models.credential import CredentialType
from nodeflow.models.node import NodeType
from nodeflow.nodes.ai import AnthropicChatNode, GoogleGeminiChatNode, OpenAIChatNode
from nodeflow.nodes.base import NodeValidationError

from conftest import decrypted_credential, make_node_context

API_KEY = {"cred-1": decrypted_credential(CredentialType.API_KEY, {"apiKey": "sk-test"})}


def recording(payload: dict, status: int = 200):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler), seen


class TestOpenAIChatNode:
    """Tests for OpenAIChatNode."""

    @pytest.mark.asyncio
    async def test_completion(self):
        transport, seen = recording(
            {
                "model": "gpt-4o-mini",
                "choices": [{"message": {"content": "Bonjour"}}],
                "usage": {"prompt_tokens": 9, "completion_tokens": 1, "total_tokens": 10},
            }
        )
        state = ExecutionContext()
        state.set_variable("word", "hello")
        context = make_node_context(
            NodeType.OPENAI_CHAT, state=state, credentials=API_KEY, transport=transport
        )

        result = await OpenAIChatNode().run(
            {
                "credentialId": "cred-1",
                "model": "gpt-4o-mini",
                "systemPrompt": "Translate to French",
                "userPrompt": "{{word}}",
                "temperature": 0.2,
                "maxTokens": 20,
            },
            context,
        )

        assert result.success
        assert result.output == {
            "text": "Bonjour",
            "model": "gpt-4o-mini",
            "usage": {"promptTokens": 9, "completionTokens": 1, "totalTokens": 10},
        }
        request = seen[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["messages"] == [
            {"role": "system", "content": "Translate to French"},
            {"role": "user", "content": "hello"},
        ]
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 20

    @pytest.mark.asyncio
    async def test_invalid_key(self):
        transport, seen = recording({"error": {"message": "bad key"}}, status=401)
        context = make_node_context(
            NodeType.OPENAI_CHAT, node_id="ai", credentials=API_KEY, transport=transport
        )

        result = await OpenAIChatNode().run({"credentialId": "cred-1", "userPrompt": "hi"}, context)

        assert result.error == "OpenAI node (ai): Invalid OpenAI API key"
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unexpected_response(self):
        transport, _ = recording({"choices": []})
        context = make_node_context(NodeType.OPENAI_CHAT, credentials=API_KEY, transport=transport)

        result = await OpenAIChatNode().run({"credentialId": "cred-1", "userPrompt": "hi"}, context)

        assert "Unexpected OpenAI response format" in result.error

    @pytest.mark.asyncio
    async def test_wrong_credential_type(self):
        credentials = {"cred-1": decrypted_credential(CredentialType.DATABASE, {"password": "x"})}
        context = make_node_context(NodeType.OPENAI_CHAT, credentials=credentials)

        result = await OpenAIChatNode().run({"credentialId": "cred-1", "userPrompt": "hi"}, context)

        assert "expected API_KEY, got DATABASE" in result.error

    @pytest.mark.asyncio
    async def test_missing_credential(self):
        context = make_node_context(NodeType.OPENAI_CHAT)

        result = await OpenAIChatNode().run({"userPrompt": "hi"}, context)

        assert "A credential is required" in result.error

    @pytest.mark.parametrize(
        "data",
        [
            {"credentialId": "c"},
            {"credentialId": "c", "userPrompt": "hi", "temperature": 3},
            {"credentialId": "c", "userPrompt": "hi", "maxTokens": 0},
        ],
    )
    def test_invalid_config(self, data):
        with pytest.raises(NodeValidationError):
            OpenAIChatNode().validate_input(data)


class TestAnthropicChatNode:
    """Tests for AnthropicChatNode."""

    @pytest.mark.asyncio
    async def test_completion(self):
        transport, seen = recording(
            {
                "model": "claude-3-5-haiku-latest",
                "content": [{"type": "text", "text": "Hi "}, {"type": "text", "text": "there"}],
                "usage": {"input_tokens": 4, "output_tokens": 2},
            }
        )
        context = make_node_context(
            NodeType.ANTHROPIC_CHAT, credentials=API_KEY, transport=transport
        )

        result = await AnthropicChatNode().run(
            {"credentialId": "cred-1", "userPrompt": "hello", "systemPrompt": "Be brief"}, context
        )

        assert result.output["text"] == "Hi there"
        assert result.output["usage"] == {"promptTokens": 4, "completionTokens": 2, "totalTokens": 6}
        assert seen[0].headers["x-api-key"] == "sk-test"
        assert json.loads(seen[0].content)["system"] == "Be brief"

    def test_temperature_capped_at_one(self):
        with pytest.raises(NodeValidationError):
            AnthropicChatNode().validate_input(
                {"credentialId": "c", "userPrompt": "hi", "temperature": 1.5}
            )


class TestGoogleGeminiChatNode:
    """Tests for GoogleGeminiChatNode."""

    @pytest.mark.asyncio
    async def test_completion(self):
        transport, seen = recording(
            {
                "candidates": [{"content": {"parts": [{"text": "Hola"}]}}],
                "usageMetadata": {
                    "promptTokenCount": 3,
                    "candidatesTokenCount": 1,
                    "totalTokenCount": 4,
                },
                "modelVersion": "gemini-1.5-flash",
            }
        )
        context = make_node_context(
            NodeType.GOOGLE_GEMINI_CHAT, credentials=API_KEY, transport=transport
        )

        result = await GoogleGeminiChatNode().run(
            {"credentialId": "cred-1", "userPrompt": "hello"}, context
        )

        assert result.output == {
            "text": "Hola",
            "model": "gemini-1.5-flash",
            "usage": {"promptTokens": 3, "completionTokens": 1, "totalTokens": 4},
        }
        assert seen[0].url.path.endswith("/models/gemini-1.5-flash:generateContent")
        assert seen[0].headers["x-goog-api-key"] == "sk-test"

"""HTTP request node.

Calls an arbitrary HTTP endpoint. The endpoint URL, headers and body accept
``{{...}}`` templates; the body must be valid JSON once templates are
resolved. The response body is stored in a workflow variable when
``variableName`` is set.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeValidationError
from nodeflow.nodes.helpers import coerce_float, parse_response_body, send_request

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
BODY_METHODS = ("POST", "PUT", "PATCH")


@dataclass
class HttpRequestConfig:
    """Configuration for HTTP request node."""

    endpoint: str
    method: str = "GET"
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    variable_name: str | None = None
    timeout: float | None = None


class HttpRequestNode(BaseNode[HttpRequestConfig]):
    """HTTP request node.

    Example:
        {"endpoint": "https://api.example.com/users/{{userId}}",
         "method": "POST", "body": "{\\"name\\": \\"{{name}}\\"}",
         "variableName": "user"}
    """

    label = "HTTP Request"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.HTTP_REQUEST,
            display_name="HTTP Request",
            description="Make an HTTP request and store the response",
            category=NodeCategory.UTILITY,
            fields=[
                NodeField(
                    name="endpoint",
                    display_name="URL",
                    type=NodeFieldType.STRING,
                    required=True,
                    templated=True,
                ),
                NodeField(
                    name="method",
                    display_name="Method",
                    type=NodeFieldType.STRING,
                    default="GET",
                    options=list(METHODS),
                ),
                NodeField(
                    name="body",
                    display_name="Body",
                    type=NodeFieldType.JSON,
                    description="JSON body for POST, PUT and PATCH",
                    templated=True,
                ),
                NodeField(
                    name="headers",
                    display_name="Headers",
                    type=NodeFieldType.JSON,
                    templated=True,
                ),
                NodeField(
                    name="variableName",
                    display_name="Variable Name",
                    type=NodeFieldType.STRING,
                    description="Store the response body under this variable",
                ),
                NodeField(
                    name="timeoutMs",
                    display_name="Timeout (ms)",
                    type=NodeFieldType.NUMBER,
                    default=30000,
                ),
            ],
            tags=["http", "api", "request"],
        )

    def validate_input(self, data: dict[str, Any]) -> HttpRequestConfig:
        endpoint = data.get("endpoint")
        if not endpoint or not isinstance(endpoint, str):
            raise NodeValidationError(
                "HTTP Request node requires an endpoint configuration",
                field="endpoint",
            )

        method = str(data.get("method") or "GET").upper()
        if method not in METHODS:
            raise NodeValidationError(f"Unsupported HTTP method: {method}", field="method")

        headers = data.get("headers") or {}
        if not isinstance(headers, dict):
            raise NodeValidationError("Headers must be an object", field="headers")

        timeout_ms = coerce_float(data.get("timeoutMs"), "timeoutMs")
        if timeout_ms is not None and timeout_ms <= 0:
            raise NodeValidationError("timeoutMs must be positive", field="timeoutMs")

        return HttpRequestConfig(
            endpoint=endpoint,
            method=method,
            body=data.get("body"),
            headers={str(k): str(v) for k, v in headers.items()},
            variable_name=data.get("variableName") or None,
            timeout=timeout_ms / 1000 if timeout_ms is not None else None,
        )

    def _build_body(self, config: HttpRequestConfig, context: NodeContext) -> str | None:
        if config.method not in BODY_METHODS or config.body is None:
            return None

        if isinstance(config.body, str):
            resolved = context.resolve(config.body)
            if not resolved.strip():
                return None
            try:
                payload = json.loads(resolved)
            except json.JSONDecodeError as e:
                raise NodeValidationError(
                    f"Invalid JSON body after template resolution: {e.msg}",
                    field="body",
                ) from e
        else:
            payload = context.resolve(config.body)

        return json.dumps(payload)

    async def execute(self, config: HttpRequestConfig, context: NodeContext) -> Any:
        endpoint = context.resolve(config.endpoint).strip()
        if not endpoint:
            raise NodeValidationError(
                "Endpoint is empty after template resolution", field="endpoint"
            )

        # Body is validated before any request is attempted
        content = self._build_body(config, context)

        headers = context.resolve(config.headers)
        if content is not None and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"

        response = await send_request(
            context,
            config.method,
            endpoint,
            headers=headers,
            content=content,
            timeout=config.timeout,
        )

        data = parse_response_body(response)
        if config.variable_name:
            context.state.set_variable(config.variable_name, data)

        context.log(
            LogLevel.INFO,
            f"HTTP request to {endpoint} returned {response.status_code}",
            {"endpoint": endpoint, "method": config.method, "status": response.status_code},
        )

        return {
            "status": response.status_code,
            "statusText": response.reason_phrase,
            "headers": dict(response.headers),
            "data": data,
        }

"""Shared helpers for node executors: outbound HTTP, coercion and conditions."""

import json
from typing import Any, Mapping

import httpx
import structlog

from nodeflow.core.conditions import OPERATORS, Condition
from nodeflow.core.retry import NonRetriableError
from nodeflow.nodes.base import NodeContext, NodeExecutionError, NodeValidationError

logger = structlog.get_logger()

USER_AGENT = "nodeflow/1.0"


class HttpStatusError(NodeExecutionError):
    """Non-2xx response from an outbound call."""

    def __init__(self, response: httpx.Response) -> None:
        reason = response.reason_phrase
        super().__init__(
            f"HTTP {response.status_code}: {reason}" if reason else f"HTTP {response.status_code}",
            error_code="HTTP_ERROR",
            details={"status": response.status_code},
        )
        self.status_code = response.status_code
        self.response = response


class ClientHttpError(HttpStatusError, NonRetriableError):
    """4xx response (other than 429); retrying cannot succeed."""

    pass


def is_retriable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def parse_response_body(response: httpx.Response) -> Any:
    """JSON body when the response declares it, text otherwise."""
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type or content_type.endswith("+json"):
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


def parse_json_config(text: Any, field: str, what: str = "JSON") -> Any:
    """Parse JSON from configuration; failures are configuration errors."""
    if not isinstance(text, str):
        return text
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise NodeValidationError(f"Invalid {what}: {e.msg}", field=field) from e


async def send_request(
    context: NodeContext,
    method: str,
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    json_body: Any = None,
    content: str | bytes | None = None,
    data: Mapping[str, Any] | None = None,
    params: Mapping[str, Any] | None = None,
    timeout: float | None = None,
) -> httpx.Response:
    """Perform an outbound request under the context's retry policy.

    Transport errors, timeouts, 5xx and 429 are retried. Other 4xx responses
    raise ClientHttpError immediately.

    Raises:
        ClientHttpError: On a non-retriable 4xx response
        HttpStatusError: When retries are exhausted on a retriable status
        httpx.HTTPError: When retries are exhausted on a transport error
    """
    request_headers = {"User-Agent": USER_AGENT}
    if headers:
        request_headers.update(headers)

    kwargs: dict[str, Any] = {"headers": request_headers}
    if json_body is not None:
        kwargs["json"] = json_body
    if content is not None:
        kwargs["content"] = content
    if data is not None:
        kwargs["data"] = data
    if params is not None:
        kwargs["params"] = params

    async with context.http_client(timeout) as client:

        async def attempt() -> httpx.Response:
            response = await client.request(method, url, **kwargs)
            if response.is_success:
                return response
            if is_retriable_status(response.status_code):
                raise HttpStatusError(response)
            raise ClientHttpError(response)

        try:
            return await context.retry_policy.run(attempt)
        except httpx.HTTPError as e:
            logger.warning(
                "outbound_request_failed",
                node_id=context.node_id,
                method=method,
                error_type=type(e).__name__,
            )
            raise


def coerce_float(value: Any, field: str, default: float | None = None) -> float | None:
    """Numeric configuration value, accepting numeric strings."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise NodeValidationError(f"{field} must be a number", field=field)
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise NodeValidationError(f"{field} must be a number", field=field) from e


def coerce_int(value: Any, field: str, default: int | None = None) -> int | None:
    number = coerce_float(value, field, None)
    if number is None:
        return default
    return int(number)


def split_addresses(value: str | None) -> list[str]:
    """Split a comma-separated address list."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_conditions(data: dict[str, Any]) -> tuple[list[Condition], str]:
    """Read ``conditions`` and ``combineConditions`` from node configuration."""
    raw = data.get("conditions") or []
    if not isinstance(raw, list):
        raise NodeValidationError("Conditions must be a list", field="conditions")

    conditions = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise NodeValidationError(
                f"Condition {index} must be an object", field="conditions"
            )
        condition = Condition.from_dict(item)
        if condition.operator not in OPERATORS:
            raise NodeValidationError(
                f"Unknown operator in condition {index}: {condition.operator}",
                field="conditions",
            )
        conditions.append(condition)

    combine = str(data.get("combineConditions") or "AND").upper()
    if combine not in ("AND", "OR"):
        raise NodeValidationError(
            f"combineConditions must be AND or OR, got {combine}",
            field="combineConditions",
        )
    return conditions, combine


def resolve_conditions(conditions: list[Condition], context: NodeContext) -> list[Condition]:
    """Resolve templates in condition values."""
    return [
        Condition(c.field_path, c.operator, str(context.resolve(c.value)))
        for c in conditions
    ]

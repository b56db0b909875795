"""Base node interface.

Defines the abstract base class for all workflow node executors and the
objects exchanged with the execution engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

import httpx
import structlog

from nodeflow.config import Settings
from nodeflow.core.context import ExecutionContext
from nodeflow.core.retry import NonRetriableError, RetryPolicy
from nodeflow.models.credential import CredentialDecrypted, CredentialType
from nodeflow.models.execution import LogLevel, TriggerType
from nodeflow.models.node import NodeDefinition, NodeType

logger = structlog.get_logger()

ConfigT = TypeVar("ConfigT")

CredentialLoader = Callable[[str], Awaitable[CredentialDecrypted | None]]

DEFAULT_HTTP_TIMEOUT = 30.0


class NodeExecutionError(Exception):
    """Error during node execution."""

    def __init__(
        self,
        message: str,
        error_code: str = "NODE_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class NodeValidationError(NonRetriableError):
    """Invalid node configuration. Never retried."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


def format_node_error(error: BaseException | str, node_id: str, label: str) -> str:
    """Render ``"<Label> node (<nodeId>): <message>"``."""
    if isinstance(error, str):
        message = error
    else:
        message = str(error) or type(error).__name__
    if not message:
        message = "Unknown error occurred"
    return f"{label} node ({node_id}): {message}"


@dataclass
class NodeLog:
    """Log entry emitted by an executor, persisted as an ExecutionLog."""

    level: LogLevel
    message: str
    data: Any = None


@dataclass
class NodeResult:
    """Uniform executor result.

    ``branch`` names the outgoing handle a branching node selected.
    """

    success: bool
    output: Any = None
    error: str | None = None
    logs: list[NodeLog] = field(default_factory=list)
    branch: str | None = None


@dataclass
class NodeContext:
    """Context passed to a node during execution.

    Carries execution metadata, the shared ExecutionContext, the node's input
    from upstream nodes and the collaborators executors may call.
    """

    execution_id: str
    workflow_id: str
    user_id: str
    node_id: str
    node_type: NodeType
    state: ExecutionContext
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_data: Any = None
    input: Any = None
    inputs: dict[str, Any] = field(default_factory=dict)
    credential_loader: CredentialLoader | None = None
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    http_transport: httpx.AsyncBaseTransport | None = None
    settings: Settings | None = None
    logs: list[NodeLog] = field(default_factory=list)
    branch: str | None = None

    def log(self, level: LogLevel, message: str, data: Any = None) -> None:
        self.logs.append(NodeLog(level=level, message=message, data=data))

    def select_branch(self, handle: str) -> None:
        """Choose the outgoing handle downstream activation follows."""
        self.branch = handle

    def resolve(self, value: Any) -> Any:
        """Resolve ``{{...}}`` templates in a string or nested structure."""
        return self.state.resolve_template_in_object(value)

    def resolve_source(self, reference: Any) -> Any:
        """Value a data node operates on.

        No reference means the node's upstream input. A string is a variable
        or node-output path (``{{...}}`` wrappers allowed); anything else is
        used as literal data.
        """
        if reference is None or reference == "":
            return self.input
        if isinstance(reference, str):
            name = reference.strip()
            if name.startswith("{{") and name.endswith("}}"):
                name = name[2:-2].strip()
            return self.state.lookup(name)
        return reference

    @property
    def http_timeout(self) -> float:
        if self.settings is not None:
            return self.settings.http_request_timeout
        return DEFAULT_HTTP_TIMEOUT

    def http_client(self, timeout: float | None = None) -> httpx.AsyncClient:
        """HTTP client for outbound calls; tests inject a mock transport."""
        return httpx.AsyncClient(
            transport=self.http_transport,
            timeout=timeout if timeout is not None else self.http_timeout,
        )

    async def get_credential(
        self,
        credential_id: str | None,
        allowed_types: Iterable[CredentialType],
        label: str,
    ) -> CredentialDecrypted:
        """Load and decrypt a credential owned by the executing user.

        Raises:
            NodeValidationError: Missing id, unknown credential or wrong type
            DecryptionError: Stored payload cannot be decrypted
        """
        if not credential_id:
            raise NodeValidationError("A credential is required", field="credentialId")
        if self.credential_loader is None:
            raise NodeValidationError("Credential store is not available")

        credential = await self.credential_loader(credential_id)
        if credential is None:
            raise NodeValidationError(
                f"Credential {credential_id} not found", field="credentialId"
            )

        allowed = list(allowed_types)
        if credential.type not in allowed:
            expected = " or ".join(t.value for t in allowed)
            raise NodeValidationError(
                f"Invalid {label} credential: expected {expected}, got {credential.type.value}",
                field="credentialId",
            )

        logger.debug(
            "node_credential_loaded",
            node_id=self.node_id,
            credential_id=credential.id,
            credential_type=credential.type.value,
        )
        return credential


def credential_secret(credential: CredentialDecrypted, *keys: str) -> str:
    """Extract the secret string from a decrypted payload.

    Payloads are either a bare string or an object; for objects the first
    present key in ``keys`` is used.
    """
    data = credential.data
    if isinstance(data, str):
        return data
    for key in keys or ("apiKey", "api_key", "token", "accessToken", "access_token"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    raise NodeValidationError(
        f"Credential {credential.id} does not contain a secret ({', '.join(keys)})",
        field="credentialId",
    )


class BaseNode(ABC, Generic[ConfigT]):
    """Abstract base class for node executors.

    All nodes must implement:
    - get_definition(): Returns node metadata
    - execute(): Performs the node's operation and returns its output

    validate_input() turns the raw configuration bag into a typed config
    record. Raise NodeValidationError there for configuration errors.

    Example implementation:
        class DelayNode(BaseNode[DelayConfig]):
            label = "Delay"

            def get_definition(self) -> NodeDefinition:
                return NodeDefinition(node_type=NodeType.DELAY, ...)

            async def execute(self, config: DelayConfig, context: NodeContext) -> Any:
                await asyncio.sleep(config.seconds)
                return {"durationMs": config.seconds * 1000}
    """

    # Used in "<label> node (<id>): <message>" errors
    label: str = "Node"

    @abstractmethod
    def get_definition(self) -> NodeDefinition:
        """Get the node definition with metadata."""
        pass

    @abstractmethod
    async def execute(self, config: ConfigT, context: NodeContext) -> Any:
        """Execute the node's operation.

        Args:
            config: Validated configuration
            context: Execution context

        Returns:
            Node output (any JSON value)

        Raises:
            NodeExecutionError: If execution fails
            NodeValidationError: If the configuration is unusable
        """
        pass

    def validate_input(self, data: dict[str, Any]) -> ConfigT:
        """Validate and transform the node configuration.

        Default implementation returns the configuration as-is.
        """
        return data  # type: ignore

    async def run(self, data: dict[str, Any], context: NodeContext) -> NodeResult:
        """Run the node and convert any failure into a failed NodeResult.

        Never raises (except on cancellation).
        """
        logger.debug(
            "node_execution_starting",
            node_type=context.node_type.value,
            node_id=context.node_id,
            execution_id=context.execution_id,
        )

        try:
            config = self.validate_input(data or {})
            output = await self.execute(config, context)
        except Exception as e:
            message = format_node_error(e, context.node_id, self.label)
            logger.warning(
                "node_execution_failed",
                node_type=context.node_type.value,
                node_id=context.node_id,
                execution_id=context.execution_id,
                error_type=type(e).__name__,
            )
            context.log(LogLevel.ERROR, message)
            return NodeResult(success=False, error=message, logs=context.logs)

        logger.debug(
            "node_execution_completed",
            node_type=context.node_type.value,
            node_id=context.node_id,
            execution_id=context.execution_id,
        )
        return NodeResult(
            success=True,
            output=output,
            logs=context.logs,
            branch=context.branch,
        )

    @property
    def node_type(self) -> NodeType:
        return self.get_definition().node_type

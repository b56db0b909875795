"""Code execute node.

Runs user Python code under RestrictedPython in a child interpreter. The code
sees the node input under ``inputVar`` and a copy of the workflow variables as
``variables``; the value it binds to ``outputVar`` becomes the node output.
Imports, dunder access and writes to non-container objects are rejected at
compile or run time. A child still running after ``code_execution_timeout``
is killed.
"""

import re
from dataclasses import dataclass
from typing import Any

from nodeflow.core.sandbox import SandboxError, SandboxTimeoutError, run_in_subprocess
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeExecutionError, NodeValidationError

LANGUAGES = ("python",)
DEFAULT_TIMEOUT = 5.0

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class CodeExecuteConfig:
    """Configuration for code execute node."""

    code: str
    language: str = "python"
    input_var: str = "input"
    output_var: str = "output"


class CodeExecuteNode(BaseNode[CodeExecuteConfig]):
    """Code execute node.

    Example:
        {"language": "python", "inputVar": "items",
         "code": "output = [i * 2 for i in items]", "outputVar": "output"}
    """

    label = "Code Execute"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.CODE_EXECUTE,
            display_name="Code Execute",
            description="Run sandboxed Python code against the node input",
            category=NodeCategory.DATA,
            fields=[
                NodeField(
                    name="language",
                    display_name="Language",
                    type=NodeFieldType.STRING,
                    default="python",
                    options=list(LANGUAGES),
                ),
                NodeField(
                    name="code",
                    display_name="Code",
                    type=NodeFieldType.CODE,
                    required=True,
                ),
                NodeField(
                    name="inputVar",
                    display_name="Input Variable",
                    type=NodeFieldType.STRING,
                    default="input",
                ),
                NodeField(
                    name="outputVar",
                    display_name="Output Variable",
                    type=NodeFieldType.STRING,
                    default="output",
                ),
            ],
            tags=["code", "python", "script"],
        )

    def validate_input(self, data: dict[str, Any]) -> CodeExecuteConfig:
        language = (data.get("language") or "python").lower()
        if language not in LANGUAGES:
            raise NodeValidationError(
                f"Unsupported language: {language}. Supported: {', '.join(LANGUAGES)}",
                field="language",
            )

        code = data.get("code")
        if not code or not isinstance(code, str) or not code.strip():
            raise NodeValidationError("Code is required", field="code")

        input_var = data.get("inputVar") or "input"
        output_var = data.get("outputVar") or "output"
        for name, field_name in ((input_var, "inputVar"), (output_var, "outputVar")):
            if not _IDENTIFIER.match(name) or name.startswith("_"):
                raise NodeValidationError(
                    f"{field_name} must be a valid identifier", field=field_name
                )

        return CodeExecuteConfig(
            code=code,
            language=language,
            input_var=input_var,
            output_var=output_var,
        )

    async def execute(self, config: CodeExecuteConfig, context: NodeContext) -> Any:
        timeout = (
            context.settings.code_execution_timeout
            if context.settings is not None
            else DEFAULT_TIMEOUT
        )

        try:
            output, printed = await run_in_subprocess(
                config.code,
                config.input_var,
                context.input,
                config.output_var,
                context.state.get_all_variables(),
                timeout=timeout,
            )
        except SandboxTimeoutError as e:
            context.log(LogLevel.WARN, "Code execution killed", {"pid": e.pid})
            raise NodeExecutionError(
                f"Code execution timed out after {timeout}s", error_code="CODE_TIMEOUT"
            ) from e
        except SandboxError as e:
            if e.kind == "compile":
                raise NodeValidationError(f"Code compilation failed: {e}", field="code") from e
            raise NodeExecutionError(str(e), error_code="CODE_ERROR") from e

        context.state.set_variable(config.output_var, output)
        if printed:
            context.log(LogLevel.INFO, "Code printed output", {"stdout": printed})
        context.log(LogLevel.INFO, "Code executed successfully", {"outputVar": config.output_var})
        return output

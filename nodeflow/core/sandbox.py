"""Restricted Python runner.

User code is compiled with RestrictedPython and executed in a separate
interpreter started with ``python -m nodeflow.core.sandbox``. The request
travels as JSON on stdin and the reply comes back as JSON on stdout, so the
parent can kill the child when it overruns its time budget.
"""

import asyncio
import json
import math
import operator
import sys
from typing import Any

from RestrictedPython import compile_restricted
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safe_builtins,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

_EXTRA_BUILTINS = {
    "dict": dict,
    "list": list,
    "set": set,
    "frozenset": frozenset,
    "sum": sum,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
    "enumerate": enumerate,
    "map": map,
    "filter": filter,
    "reversed": reversed,
}

_INPLACE_OPERATORS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
}


class SandboxTimeoutError(Exception):
    """Restricted code did not finish in time; the child was killed."""

    def __init__(self, pid: int):
        super().__init__(f"Sandbox process {pid} timed out")
        self.pid = pid


class SandboxError(Exception):
    """Restricted code failed to compile or raised while running."""

    def __init__(self, message: str, kind: str = "runtime"):
        super().__init__(message)
        self.kind = kind


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    func = _INPLACE_OPERATORS.get(op)
    if func is None:
        raise ValueError(f"Operator {op} is not allowed")
    return func(target, value)


class _SafeJson:
    """json.loads / json.dumps only."""

    @staticmethod
    def loads(text: str) -> Any:
        return json.loads(text)

    @staticmethod
    def dumps(value: Any, indent: int | None = None, sort_keys: bool = False) -> str:
        return json.dumps(value, indent=indent, sort_keys=sort_keys)


class _SafeMath:
    ceil = staticmethod(math.ceil)
    floor = staticmethod(math.floor)
    sqrt = staticmethod(math.sqrt)
    log = staticmethod(math.log)
    pi = math.pi
    e = math.e


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def run_restricted(
    code: str,
    input_var: str,
    input_value: Any,
    output_var: str,
    variables: dict[str, Any],
) -> tuple[Any, str]:
    """Compile and run code in a restricted namespace.

    Runs in the calling interpreter; use ``run_in_subprocess`` for
    untrusted code.

    Returns:
        Tuple of (value bound to ``output_var``, printed text)

    Raises:
        SyntaxError: If the code does not compile under the restrictions
    """
    byte_code = compile_restricted(code, filename="<code_execute>", mode="exec")

    namespace: dict[str, Any] = {
        "__builtins__": {**safe_builtins, **_EXTRA_BUILTINS},
        "__name__": "code_execute",
        "__metaclass__": type,
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_print_": PrintCollector,
        "json": _SafeJson(),
        "math": _SafeMath(),
        "variables": variables,
        input_var: input_value,
    }
    exec(byte_code, namespace)

    printer = namespace.get("_print")
    printed = printer() if callable(printer) else ""
    return namespace.get(output_var), printed


async def run_in_subprocess(
    code: str,
    input_var: str,
    input_value: Any,
    output_var: str,
    variables: dict[str, Any],
    timeout: float,
) -> tuple[Any, str]:
    """Run restricted code in a child interpreter, killing it after ``timeout``.

    Input and output cross the process boundary as JSON; sets and tuples
    come back as lists and other non-JSON values as strings.

    Raises:
        SandboxTimeoutError: If the child is still running after ``timeout``
        SandboxError: If the code fails to compile or raises
    """
    request = json.dumps(
        {
            "code": code,
            "inputVar": input_var,
            "input": input_value,
            "outputVar": output_var,
            "variables": variables,
        },
        default=_json_default,
    ).encode()

    process = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "nodeflow.core.sandbox",
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(request), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise SandboxTimeoutError(process.pid) from e
    finally:
        if process.returncode is None:
            process.kill()
            await process.wait()

    try:
        reply = json.loads(stdout)
    except ValueError as e:
        detail = stderr.decode(errors="replace").strip().splitlines()
        raise SandboxError(
            detail[-1] if detail else f"Sandbox exited with code {process.returncode}"
        ) from e

    if "error" in reply:
        raise SandboxError(reply["error"], kind=reply.get("kind", "runtime"))
    return reply.get("output"), reply.get("printed", "")


def main() -> None:
    request = json.loads(sys.stdin.read())
    try:
        output, printed = run_restricted(
            request["code"],
            request["inputVar"],
            request.get("input"),
            request["outputVar"],
            request.get("variables") or {},
        )
        reply = {"output": output, "printed": printed}
    except SyntaxError as e:
        reply = {"error": str(e), "kind": "compile"}
    except Exception as e:
        reply = {"error": str(e) or type(e).__name__, "kind": "runtime"}

    sys.stdout.write(json.dumps(reply, default=_json_default))
    sys.stdout.flush()


if __name__ == "__main__":
    main()

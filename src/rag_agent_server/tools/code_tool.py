"""Sandboxed execution of small Python snippets for calculations.

Code is checked against an AST allow-list in the server process, then run in a
separate isolated interpreter with a restricted builtins table, resource limits
and a hard wall-clock timeout. There is no import statement, no access to names
or attributes starting with an underscore, no frame or code object attributes,
and no file or process builtins.
"""

from __future__ import annotations

import ast
import json
import os
import subprocess
import sys
import textwrap
import time
from typing import Any

from pydantic import BaseModel, Field

from ..errors import ToolTimeout
from .registry import ToolSpec

TOOL_NAME = "code_executor"
EXECUTION_TIMEOUT_SECONDS = 5.0
MAX_CODE_CHARS = 20000
MAX_OUTPUT_CHARS = 30000

_FORBIDDEN_NODES: tuple[type[ast.AST], ...] = (
    ast.Import,
    ast.ImportFrom,
    ast.Global,
    ast.Nonlocal,
    ast.ClassDef,
    ast.With,
    ast.AsyncWith,
    ast.AsyncFunctionDef,
    ast.AsyncFor,
    ast.Await,
    ast.Yield,
    ast.YieldFrom,
)

_FRAME_ATTRIBUTES = frozenset(
    {
        "gi_frame", "gi_code", "gi_yieldfrom", "cr_frame", "cr_code", "cr_await",
        "ag_frame", "ag_code", "ag_await", "f_back", "f_globals", "f_locals",
        "f_builtins", "f_code", "tb_frame", "tb_next",
    }
)
_FRAME_PREFIXES = ("co_", "f_", "tb_")

# Everything the runner needs lives inside run(); module globals are cleared
# before user code executes so a frame walk up the stack finds nothing.
_RUNNER = r'''
def run():
    import ast, builtins, json, math, sys, textwrap
    from statistics import mean, median, mode, pstdev, pvariance, stdev, variance

    try:
        import resource
        resource.setrlimit(resource.RLIMIT_AS, (256 * 1024 * 1024, 256 * 1024 * 1024))
        resource.setrlimit(resource.RLIMIT_NPROC, (0, 0))
    except Exception:
        pass

    src = sys.stdin.read()
    logs = []

    def capture_print(*args, sep=" ", end=""):
        logs.append(sep.join(str(a) for a in args))

    def fmt(value):
        if value is None:
            return "None"
        if isinstance(value, str):
            return value
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError):
            return repr(value)

    safe = {
        name: getattr(builtins, name)
        for name in (
            "abs", "all", "any", "bool", "chr", "dict", "divmod", "enumerate", "filter", "float",
            "format", "frozenset", "int", "isinstance", "len", "list", "map", "max", "min", "ord",
            "pow", "range", "repr", "reversed", "round", "set", "sorted", "str", "sum", "tuple", "zip",
            "Exception", "ArithmeticError", "IndexError", "KeyError", "TypeError", "ValueError",
            "ZeroDivisionError",
        )
    }
    safe["print"] = capture_print
    env = {
        "__builtins__": safe,
        "math": math,
        "mean": mean, "median": median, "mode": mode, "stdev": stdev,
        "pstdev": pstdev, "variance": variance, "pvariance": pvariance,
        "json_dumps": json.dumps, "json_loads": json.loads,
    }
    globals().clear()

    try:
        try:
            tree = ast.parse(src, mode="exec")
            wrapped = False
        except SyntaxError as exc:
            if "outside function" not in str(exc):
                raise
            tree = ast.parse("def _main():\n" + textwrap.indent(src, "    ") + "\n_result = _main()\n")
            wrapped = True
        last = None
        if not wrapped and tree.body and isinstance(tree.body[-1], ast.Expr):
            last = ast.Expression(tree.body.pop().value)
        exec(compile(tree, "<sandbox>", "exec"), env)
        if wrapped:
            value = env.get("_result")
        elif last is not None:
            value = eval(compile(last, "<sandbox>", "eval"), env)
        else:
            value = None
        out = {"ok": True, "result": fmt(value), "logs": logs}
    except MemoryError:
        out = {"ok": False, "error": "MemoryError: memory limit exceeded", "logs": logs}
    except Exception as exc:
        out = {"ok": False, "error": f"{type(exc).__name__}: {exc}", "logs": logs}
    sys.stdout.write(json.dumps(out))


run()
'''


class CodeInput(BaseModel):
    code: str = Field(
        ...,
        min_length=1,
        max_length=MAX_CODE_CHARS,
        description=(
            "Python code to execute for calculations or algorithms. The value of the last "
            "expression (or a top-level return) is the result; print() output is captured. "
            "math, mean/median/stdev and json_dumps/json_loads are available; imports are not."
        ),
    )


class CodeOutput(BaseModel):
    result: str = Field(..., description="The result of the code execution")
    logs: list[str] = Field(default_factory=list, description="Captured print() output")
    executionTimeMs: float


def _parse(code: str) -> ast.Module:
    try:
        return ast.parse(code, mode="exec")
    except SyntaxError as exc:
        if "outside function" not in str(exc):
            raise ValueError(f"SyntaxError: {exc.msg} (line {exc.lineno})") from exc
    return ast.parse("def _main():\n" + textwrap.indent(code, "    "))


def check_code(code: str) -> None:
    """Reject code that reaches outside the allow-list.

    Raises:
        ValueError: With a human-readable reason.
    """
    tree = _parse(code)
    for node in ast.walk(tree):
        if isinstance(node, _FORBIDDEN_NODES):
            raise ValueError(f"'{type(node).__name__}' statements are not allowed in the sandbox")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ValueError(f"Access to attribute '{node.attr}' is not allowed")
        if isinstance(node, ast.Attribute) and (
            node.attr in _FRAME_ATTRIBUTES or node.attr.startswith(_FRAME_PREFIXES)
        ):
            raise ValueError(f"Access to frame or code attribute '{node.attr}' is not allowed")
        if isinstance(node, ast.Name) and node.id.startswith("_"):
            raise ValueError(f"Name '{node.id}' is not allowed")
        if isinstance(node, (ast.FunctionDef, ast.Lambda)):
            name = getattr(node, "name", "")
            if name.startswith("_") and name != "_main":
                raise ValueError(f"Function name '{name}' is not allowed")


def _truncate(text: str) -> str:
    if len(text) > MAX_OUTPUT_CHARS:
        return text[:MAX_OUTPUT_CHARS] + "\n... [output truncated]"
    return text


def execute_code(payload: CodeInput, *, timeout_seconds: float = EXECUTION_TIMEOUT_SECONDS) -> dict[str, Any]:
    check_code(payload.code)
    start_time = time.time()
    try:
        completed = subprocess.run(
            [sys.executable, "-I", "-S", "-c", _RUNNER],
            input=payload.code,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            env={"PYTHONIOENCODING": "utf-8", "PATH": os.environ.get("PATH", "")},
        )
    except subprocess.TimeoutExpired as exc:
        raise ToolTimeout(TOOL_NAME, f"Code execution exceeded {timeout_seconds:g}s and was stopped") from exc

    execution_time_ms = round((time.time() - start_time) * 1000, 2)
    try:
        outcome = json.loads(completed.stdout)
    except json.JSONDecodeError as exc:
        detail = completed.stderr.strip().splitlines()[-1:] or ["no output"]
        raise RuntimeError(f"Sandbox crashed: {detail[0]}") from exc

    logs = [_truncate(line) for line in outcome.get("logs", [])]
    if not outcome.get("ok"):
        printed = "\n".join(logs)
        message = outcome.get("error", "unknown error")
        raise RuntimeError(f"{message}\n{printed}".strip())
    return {"result": _truncate(outcome["result"]), "logs": logs, "executionTimeMs": execution_time_ms}


code_tool = ToolSpec(
    name=TOOL_NAME,
    description=(
        "Executes Python code to perform calculations or solve complex algorithms. Use this for "
        "mathematical operations, lists, dicts, data transformations, or custom algorithm implementations."
    ),
    input_schema=CodeInput,
    output_schema=CodeOutput,
    invoke=execute_code,
    timeout=EXECUTION_TIMEOUT_SECONDS + 5.0,
    status="Running a calculation…",
)

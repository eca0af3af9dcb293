"""Tool registry: a single capability contract shared by every tool.

Each tool declares pydantic input/output models. Invocation validates the
arguments, runs the tool under a timeout and validates the return value. Every
failure along the way comes back as an error ToolResult so the orchestration
loop can hand it to the model as an observation.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, ValidationError

from ..errors import ContractViolation, ToolError, ToolInputError, ToolNotFound, ToolRegistrationError, ToolTimeout

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0

ToolFunction = Callable[[BaseModel], Any]


@dataclass(slots=True)
class ToolSpec:
    """A registered tool.

    ``stream_event`` names the outbound event used for successful results
    (e.g. "vector_search" lets clients render documents richly); ``status`` is a
    short human-readable progress line shown while the tool runs.
    """

    name: str
    description: str
    input_schema: type[BaseModel]
    output_schema: type[BaseModel]
    invoke: ToolFunction
    timeout: float = DEFAULT_TOOL_TIMEOUT
    stream_event: str | None = None
    status: str | None = None


@dataclass(slots=True)
class ToolResult:
    name: str
    call_id: str | None
    arguments: dict[str, Any]
    output: dict[str, Any] | None = None
    error: str | None = None
    error_kind: str | None = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def observation(self) -> str:
        """Text handed back to the model as the tool message content."""
        if self.ok:
            return json.dumps(self.output, ensure_ascii=False, default=str)
        return f"Tool '{self.name}' failed: {self.error}"


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "input"
        problems.append(f"{location}: {err.get('msg')}")
    return "; ".join(problems)


class ToolRegistry:
    def __init__(self, default_timeout: float = DEFAULT_TOOL_TIMEOUT) -> None:
        self.default_timeout = default_timeout
        self._tools: dict[str, ToolSpec] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(
        self,
        name: str,
        description: str,
        input_schema: type[BaseModel],
        output_schema: type[BaseModel],
        invoke: ToolFunction,
        *,
        timeout: float | None = None,
        stream_event: str | None = None,
        status: str | None = None,
    ) -> ToolSpec:
        spec = ToolSpec(
            name=name,
            description=description,
            input_schema=input_schema,
            output_schema=output_schema,
            invoke=invoke,
            timeout=self.default_timeout if timeout is None else timeout,
            stream_event=stream_event,
            status=status,
        )
        return self.add(spec)

    def add(self, spec: ToolSpec) -> ToolSpec:
        """Register a prebuilt ToolSpec, rejecting anything off-contract."""
        if not spec.name or not spec.name.strip():
            raise ToolRegistrationError("Tool name must be a non-empty string.")
        if spec.name in self._tools:
            raise ToolRegistrationError(f"Tool '{spec.name}' is already registered.")
        if not spec.description:
            raise ToolRegistrationError(f"Tool '{spec.name}' needs a description.")
        for label, schema in (("input", spec.input_schema), ("output", spec.output_schema)):
            if not (inspect.isclass(schema) and issubclass(schema, BaseModel)):
                raise ToolRegistrationError(f"Tool '{spec.name}' {label} schema must be a pydantic model.")
        if not callable(spec.invoke):
            raise ToolRegistrationError(f"Tool '{spec.name}' invoke must be callable.")
        if spec.timeout <= 0:
            raise ToolRegistrationError(f"Tool '{spec.name}' timeout must be positive.")
        self._tools[spec.name] = spec
        logger.debug("Registered tool %s", spec.name)
        return spec

    def resolve(self, name: str) -> ToolSpec:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFound(name) from None

    def list_schemas(self) -> list[dict[str, Any]]:
        """Tool descriptors exposed to the model."""
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "input_schema": spec.input_schema.model_json_schema(),
            }
            for spec in self._tools.values()
        ]

    def as_langchain_tools(self) -> list[BaseTool]:
        """Wrap each tool as a StructuredTool so chat models can bind them."""
        return [self._to_structured_tool(spec) for spec in self._tools.values()]

    def _to_structured_tool(self, spec: ToolSpec) -> StructuredTool:
        async def _run(**kwargs: Any) -> str:
            return (await self.invoke(spec.name, kwargs)).observation()

        return StructuredTool.from_function(
            coroutine=_run,
            name=spec.name,
            description=spec.description,
            args_schema=spec.input_schema,
        )

    def validate_input(self, name: str, arguments: Mapping[str, Any] | None) -> BaseModel:
        spec = self.resolve(name)
        try:
            return spec.input_schema.model_validate(dict(arguments or {}))
        except ValidationError as exc:
            raise ToolInputError(name, f"Invalid arguments: {_format_validation_error(exc)}") from exc

    async def invoke(
        self,
        name: str,
        arguments: Mapping[str, Any] | None,
        *,
        call_id: str | None = None,
    ) -> ToolResult:
        """Run one tool call. Raises only ToolNotFound; everything else is a ToolResult."""
        spec = self.resolve(name)
        args = dict(arguments or {})
        result = ToolResult(name=name, call_id=call_id, arguments=args)
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            validated = self.validate_input(name, args)
            result.arguments = validated.model_dump(mode="json")
            raw = await asyncio.wait_for(self._call(spec, validated), timeout=spec.timeout)
            result.output = self._validate_output(spec, raw)
        except asyncio.TimeoutError:
            err = ToolTimeout(name, f"Timed out after {spec.timeout:g}s")
            result.error, result.error_kind = str(err), err.kind
        except ToolError as exc:
            result.error, result.error_kind = str(exc), exc.kind
        except Exception as exc:
            logger.exception("[TOOLS] Tool execution failed: %s", name)
            result.error, result.error_kind = str(exc) or exc.__class__.__name__, ToolError.kind
        result.elapsed_ms = int((loop.time() - started) * 1000)
        if result.ok:
            logger.info("[TOOLS] %s completed in %dms", name, result.elapsed_ms)
        else:
            logger.warning("[TOOLS] %s failed (%s): %s", name, result.error_kind, result.error)
        return result

    async def invoke_many(
        self,
        calls: Sequence[Mapping[str, Any]],
        *,
        parallel: bool = True,
    ) -> list[ToolResult]:
        """Run several tool calls; results keep the order of ``calls``."""
        for call in calls:
            self.resolve(call["name"])
        coros = [self.invoke(call["name"], call.get("args"), call_id=call.get("id")) for call in calls]
        if parallel:
            return list(await asyncio.gather(*coros))
        return [await coro for coro in coros]

    @staticmethod
    async def _call(spec: ToolSpec, validated: BaseModel) -> Any:
        if inspect.iscoroutinefunction(spec.invoke):
            return await spec.invoke(validated)
        # Blocking tools (sync HTTP clients, subprocesses) run off the event loop
        result = await asyncio.to_thread(spec.invoke, validated)
        if inspect.isawaitable(result):
            return await result
        return result

    @staticmethod
    def _validate_output(spec: ToolSpec, raw: Any) -> dict[str, Any]:
        try:
            if isinstance(raw, spec.output_schema):
                model = raw
            else:
                model = spec.output_schema.model_validate(raw)
        except ValidationError as exc:
            raise ContractViolation(
                spec.name, f"Output does not match contract: {_format_validation_error(exc)}"
            ) from exc
        return model.model_dump(mode="json")

"""Outbound chat events and their Server-Sent Events framing."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field

from .tools.registry import ToolResult

MESSAGE = "message"
THINKING = "thinking"
TOOL_START = "tool_start"
TOOL_END = "tool_end"
ERROR = "error"
DONE = "done"


class StreamEvent(BaseModel):
    """One event on the chat stream."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)

    def encode(self) -> str:
        payload = json.dumps(self.data, ensure_ascii=False, default=str)
        return f"event: {self.event}\ndata: {payload}\n\n"


def message_event(content: str) -> StreamEvent:
    return StreamEvent(event=MESSAGE, data={"content": content})


def thinking_event(content: str, source: str = "model") -> StreamEvent:
    return StreamEvent(event=THINKING, data={"content": content, "source": source})


def tool_start_event(
    name: str,
    call_id: str | None,
    arguments: dict[str, Any],
    status: str | None = None,
) -> StreamEvent:
    data: dict[str, Any] = {"tool": name, "toolCallId": call_id, "input": arguments}
    if status:
        data["status"] = status
    return StreamEvent(event=TOOL_START, data=data)


def tool_end_event(result: ToolResult, rich_event: str | None = None) -> StreamEvent:
    """Tool outcome; successful results of tools with a rich tag use that tag instead."""
    data: dict[str, Any] = {
        "tool": result.name,
        "toolCallId": result.call_id,
        "status": "success" if result.ok else "error",
        "elapsedMs": result.elapsed_ms,
    }
    if result.ok:
        data["output"] = result.output
    else:
        data["error"] = {"kind": result.error_kind, "message": result.error}
    event = rich_event if (rich_event and result.ok) else TOOL_END
    return StreamEvent(event=event, data=data)


def error_event(message: str, kind: str = "error") -> StreamEvent:
    return StreamEvent(event=ERROR, data={"message": message, "kind": kind})


def done_event(
    thread_id: str,
    total_time_ms: int,
    *,
    persisted: bool = False,
    iteration_limit_reached: bool = False,
    route: str | None = None,
) -> StreamEvent:
    return StreamEvent(
        event=DONE,
        data={
            "threadId": thread_id,
            "totalTimeMs": total_time_ms,
            "persisted": persisted,
            "iterationLimitReached": iteration_limit_reached,
            "route": route,
        },
    )

"""Conversation messages and their conversion to and from LangChain messages."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Literal

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant", "tool"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One persisted entry of a conversation thread."""

    role: Role
    content: str
    thread_id: str
    tool_name: str | None = None
    tool_call_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def user(cls, thread_id: str, content: str) -> "Message":
        return cls(role="user", content=content, thread_id=thread_id)

    @classmethod
    def assistant(cls, thread_id: str, content: str) -> "Message":
        return cls(role="assistant", content=content, thread_id=thread_id)


def coerce_content(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def extract_text(content: Any) -> str:
    """Extract plain text from message content (string or list of content blocks)."""
    text, _ = split_content(content)
    return text


def split_content(content: Any) -> tuple[str, str]:
    """Split message content into (text, thinking).

    Gemini returns either a plain string or a list of blocks such as
    {"type": "text", "text": ...} and {"type": "thinking", "thinking": ...}.
    """
    if isinstance(content, str):
        return content, ""
    text_parts: list[str] = []
    thinking_parts: list[str] = []
    if isinstance(content, list):
        for block in content:
            if isinstance(block, str):
                text_parts.append(block)
            elif isinstance(block, dict):
                block_type = block.get("type")
                if block_type == "text":
                    text_parts.append(block.get("text", ""))
                elif block_type in ("thinking", "reasoning"):
                    thinking_parts.append(block.get(block_type, "") or "")
    return "".join(text_parts), "".join(thinking_parts)


def to_langchain_messages(history: Iterable[Message]) -> list[BaseMessage]:
    """Replay stored messages as a model context.

    Stored tool rows carry no assistant tool-call record, so each run of tool rows
    is preceded by a synthesized assistant message requesting exactly those calls.
    Tool rows without a tool_call_id cannot be correlated and are replayed as
    context notes instead.
    """
    messages: list[BaseMessage] = []
    pending_tools: list[Message] = []

    def flush_tools() -> None:
        if not pending_tools:
            return
        tool_calls = [
            {"name": item.tool_name or "unknown_tool", "args": {}, "id": item.tool_call_id}
            for item in pending_tools
        ]
        messages.append(AIMessage(content="", tool_calls=tool_calls))
        for item in pending_tools:
            messages.append(
                ToolMessage(content=item.content, tool_call_id=item.tool_call_id, name=item.tool_name)
            )
        pending_tools.clear()

    for item in history:
        if item.role == "tool":
            if item.tool_call_id:
                pending_tools.append(item)
                continue
            logger.warning(
                "[HISTORY] Tool message without tool_call_id in thread %s (tool=%s); replaying as context",
                item.thread_id,
                item.tool_name,
            )
            flush_tools()
            messages.append(SystemMessage(content=f"[{item.tool_name or 'tool'} result]\n{item.content}"))
            continue
        flush_tools()
        if item.role == "user":
            messages.append(HumanMessage(content=item.content))
        elif item.role == "assistant":
            messages.append(AIMessage(content=item.content))
        else:
            messages.append(SystemMessage(content=item.content))
    flush_tools()
    return messages


def from_tool_message(thread_id: str, message: ToolMessage) -> Message:
    return Message(
        role="tool",
        content=coerce_content(message.content),
        thread_id=thread_id,
        tool_name=message.name,
        tool_call_id=message.tool_call_id or None,
    )

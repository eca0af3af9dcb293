from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .messages import Message


class ChatRequest(BaseModel):
    """Body of the chat endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, description="The user's message for this turn")
    thread_id: str | None = Field(
        default=None,
        alias="threadId",
        description="Conversation thread; a new one is created when omitted",
    )


class MessageEnvelope(BaseModel):
    """Serializable message payload."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str
    tool_name: str | None = None
    tool_call_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_message(cls, message: Message) -> "MessageEnvelope":
        return cls(
            role=message.role,
            content=message.content,
            tool_name=message.tool_name,
            tool_call_id=message.tool_call_id,
            created_at=message.created_at,
        )


class InvokeResponse(BaseModel):
    thread_id: str
    answer: str
    messages: list[MessageEnvelope]
    persisted: bool = False
    iteration_limit_reached: bool = False


class HistoryResponse(BaseModel):
    thread_id: str
    messages: list[MessageEnvelope]


class HealthResponse(BaseModel):
    status: str = "ok"

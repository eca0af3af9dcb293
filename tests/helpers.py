"""Shared test helpers: scripted chat models, a static retriever and stream parsing."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from pydantic import Field

from rag_agent_server.retrieval import RetrievedDocument, Retriever
from rag_agent_server.routing import RouteDecision


class ScriptedChatModel(BaseChatModel):
    """Chat model that replies with a fixed script of AIMessages.

    With ``repeat_last`` the final reply is returned forever (used to drive the
    iteration cap).
    """

    responses: list[AIMessage]
    repeat_last: bool = False
    calls: list[list[BaseMessage]] = Field(default_factory=list)
    bound_tool_names: list[str] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        self.calls.append(list(messages))
        index = len(self.calls) - 1
        if index >= len(self.responses):
            if not self.repeat_last:
                raise AssertionError(f"Unexpected model call #{index + 1}")
            index = len(self.responses) - 1
        reply = self.responses[index].model_copy(update={"id": None})
        return ChatResult(generations=[ChatGeneration(message=reply)])

    def bind_tools(self, tools, **kwargs):
        self.bound_tool_names[:] = [getattr(tool, "name", str(tool)) for tool in tools]
        return self


class FailingChatModel(BaseChatModel):
    """Chat model whose provider is down."""

    @property
    def _llm_type(self) -> str:
        return "failing"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        raise ConnectionError("provider outage")

    def bind_tools(self, tools, **kwargs):
        return self


def tool_call(name: str, args: dict[str, Any] | None = None, call_id: str = "call-1") -> dict[str, Any]:
    return {"name": name, "args": args or {}, "id": call_id, "type": "tool_call"}


def ai_tool_request(*calls: dict[str, Any], text: str = "") -> AIMessage:
    return AIMessage(content=text, tool_calls=list(calls))


def router_model(route: str, logic: str = "test routing") -> MagicMock:
    """A model stand-in whose structured-output classifier returns ``route``."""
    model = MagicMock()
    classifier = MagicMock()
    classifier.ainvoke = AsyncMock(return_value=RouteDecision(type=route, logic=logic))
    model.with_structured_output.return_value = classifier
    return model


class StaticRetriever(Retriever):
    """Retriever that returns the same documents for every query."""

    def __init__(self, documents: list[RetrievedDocument] | None = None, error: Exception | None = None) -> None:
        self.documents = documents or []
        self.error = error
        self.queries: list[tuple[str, int]] = []

    async def search(self, query, limit=5, filter=None):
        self.queries.append((query, limit))
        if self.error is not None:
            raise self.error
        return self.documents[:limit]


def parse_sse(body: str) -> list[tuple[str, dict[str, Any]]]:
    """Split a text/event-stream body into (event, data) pairs."""
    events = []
    for frame in body.strip().split("\n\n"):
        if not frame.strip():
            continue
        name, data = "message", {}
        for line in frame.splitlines():
            if line.startswith("event: "):
                name = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        events.append((name, data))
    return events


async def collect(events) -> list:
    return [event async for event in events]

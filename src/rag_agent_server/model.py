"""Chat model construction and invocation (single-shot and streaming)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, message_chunk_to_message
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool
from langchain_google_genai import ChatGoogleGenerativeAI

from .config import Settings
from .errors import ModelUnavailable
from .messages import split_content
from .prompts import render_system_prompt

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TokenDelta:
    text: str


@dataclass(slots=True)
class ThinkingDelta:
    text: str


@dataclass(slots=True)
class ToolCallRequested:
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(slots=True)
class Completion:
    message: AIMessage


ModelEvent = TokenDelta | ThinkingDelta | ToolCallRequested | Completion


def build_model(settings: Settings, model_id: str | None = None) -> ChatGoogleGenerativeAI:
    """Instantiate the Gemini chat model."""
    if not settings.google_api_key:
        raise ModelUnavailable("No Gemini API key configured (GOOGLE_API_KEY)")
    kwargs: dict[str, Any] = {}
    if settings.include_thoughts:
        kwargs["include_thoughts"] = True
    return ChatGoogleGenerativeAI(
        model=model_id or settings.gemini_model,
        api_key=settings.google_api_key,
        temperature=settings.model_temperature,
        timeout=settings.model_timeout_seconds,
        max_retries=settings.model_max_retries,
        **kwargs,
    )


class ModelInvoker:
    """Wraps the chat model with the system prompt and the bound tool schemas."""

    def __init__(self, model: BaseChatModel, system_prompt_template: str) -> None:
        self.model = model
        self.system_prompt_template = system_prompt_template

    def _prepare(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None,
    ) -> tuple[Any, list[BaseMessage]]:
        system_message = SystemMessage(content=render_system_prompt(self.system_prompt_template))
        try:
            runnable = self.model.bind_tools(list(tools)) if tools else self.model
        except Exception as exc:
            raise ModelUnavailable(f"Could not bind tools to the model: {exc}") from exc
        return runnable, [system_message, *messages]

    async def invoke_once(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None = None,
        config: RunnableConfig | None = None,
    ) -> AIMessage:
        runnable, payload = self._prepare(messages, tools)
        try:
            response = await runnable.ainvoke(payload, config=config)
        except Exception as exc:
            logger.exception("[MODEL] Model call failed")
            raise ModelUnavailable(f"Model call failed: {exc}") from exc
        return response

    async def invoke_streaming(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None = None,
        config: RunnableConfig | None = None,
    ) -> AsyncIterator[ModelEvent]:
        """Stream text and thinking deltas, then the requested tool calls, then the full message."""
        runnable, payload = self._prepare(messages, tools)
        aggregate = None
        try:
            async for chunk in runnable.astream(payload, config=config):
                text, thinking = split_content(chunk.content)
                if thinking:
                    yield ThinkingDelta(thinking)
                if text:
                    yield TokenDelta(text)
                aggregate = chunk if aggregate is None else aggregate + chunk
        except Exception as exc:
            logger.exception("[MODEL] Streaming model call failed")
            raise ModelUnavailable(f"Model call failed: {exc}") from exc

        message = message_chunk_to_message(aggregate) if aggregate is not None else AIMessage(content="")
        if not isinstance(message, AIMessage):
            message = AIMessage(content=message.content)
        for call in message.tool_calls:
            yield ToolCallRequested(name=call["name"], args=dict(call.get("args") or {}), id=call.get("id"))
        yield Completion(message)

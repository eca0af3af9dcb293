"""Chat turns: history reload, the agent loop, persistence and the closing ``done`` event."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator
from uuid import uuid4

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
from langchain_core.runnables import RunnableConfig

from .agent import DEFAULT_MAX_ITERATIONS, create_graph, initial_state, recursion_limit_for
from .config import Settings
from .errors import AgentError, ModelUnavailable, StoreUnavailable, ToolNotFound
from .events import MESSAGE, StreamEvent, done_event, error_event
from .messages import Message, extract_text, from_tool_message, to_langchain_messages
from .model import ModelInvoker, build_model
from .prompts import get_system_prompt
from .retrieval import RetrievalAugmentor, SupabaseRetriever
from .routing import QueryRouter
from .store import ConversationStore, create_conversation_store
from .tools import build_tool_registry

logger = logging.getLogger(__name__)


def new_thread_id() -> str:
    return str(uuid4())


@dataclass(slots=True)
class TurnOutcome:
    """What a finished turn produced; filled in while the turn streams."""

    thread_id: str = ""
    answer: str = ""
    messages: list[Message] = field(default_factory=list)
    events: list[StreamEvent] = field(default_factory=list)
    error: str | None = None
    persisted: bool = False
    iteration_limit_reached: bool = False


class ChatService:
    def __init__(
        self,
        store: ConversationStore,
        graph: Any,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self.store = store
        self.graph = graph
        self.max_iterations = max_iterations

    async def history(self, thread_id: str) -> list[Message]:
        return await self.store.load_history(thread_id)

    async def close(self) -> None:
        await self.store.close()

    async def stream_turn(
        self,
        text: str,
        thread_id: str | None = None,
        outcome: TurnOutcome | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn, yielding events in loop order. The last event is always ``done``."""
        started = time.perf_counter()
        thread_id = thread_id or new_thread_id()
        outcome = outcome if outcome is not None else TurnOutcome()
        outcome.thread_id = thread_id

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            history = await self.store.load_history(thread_id)
        except StoreUnavailable as exc:
            logger.warning("[AGENT] History unavailable for thread %s, continuing without it: %s", thread_id, exc)
            history = []

        prior = to_langchain_messages(history)
        inputs = initial_state([*prior, HumanMessage(content=text)])
        config: RunnableConfig = {
            "recursion_limit": recursion_limit_for(self.max_iterations),
            "configurable": {"thread_id": thread_id},
        }
        logger.info("[AGENT] Turn started for thread %s (%d prior message(s))", thread_id, len(history))

        final_state: dict[str, Any] | None = None
        failure: StreamEvent | None = None
        try:
            async for mode, chunk in self.graph.astream(inputs, config, stream_mode=["custom", "values"]):
                if mode == "values":
                    final_state = chunk
                    continue
                outcome.events.append(chunk)
                yield chunk
        except ToolNotFound as exc:
            logger.warning("[AGENT] Aborting turn: %s", exc)
            failure = error_event(str(exc), kind="tool_not_found")
        except ModelUnavailable as exc:
            logger.error("[AGENT] Aborting turn, model unavailable: %s", exc)
            failure = error_event("The language model is unavailable right now. Please try again.", kind="model_unavailable")
        except AgentError as exc:
            logger.error("[AGENT] Aborting turn: %s", exc)
            failure = error_event(str(exc), kind="agent_error")
        except Exception as exc:
            logger.exception("[AGENT] Unexpected failure in thread %s", thread_id)
            failure = error_event(f"Unexpected error: {exc}", kind="internal_error")

        if failure is not None or final_state is None:
            failure = failure or error_event("The turn produced no result.", kind="internal_error")
            outcome.error = failure.data["message"]
            outcome.events.append(failure)
            yield failure
            done = done_event(thread_id, elapsed_ms())
            outcome.events.append(done)
            yield done
            return

        turn_messages = final_state["messages"][len(prior):]
        final_message = turn_messages[-1]
        answer = extract_text(final_message.content) if isinstance(final_message, AIMessage) else ""
        if not answer and not any(event.event == MESSAGE for event in outcome.events):
            logger.warning("[AGENT] Model returned an empty answer for thread %s", thread_id)

        to_persist = [Message.user(thread_id, text)]
        to_persist.extend(
            from_tool_message(thread_id, message) for message in turn_messages if isinstance(message, ToolMessage)
        )
        to_persist.append(Message.assistant(thread_id, answer))

        persisted = False
        try:
            await self.store.append_messages(thread_id, to_persist)
            persisted = True
        except StoreUnavailable as exc:
            logger.error("[AGENT] Failed to persist turn for thread %s: %s", thread_id, exc)

        limit_reached = bool(final_state.get("limit_reached"))
        outcome.answer = answer
        outcome.messages = to_persist
        outcome.persisted = persisted
        outcome.iteration_limit_reached = limit_reached
        logger.info(
            "[AGENT] Turn finished for thread %s in %dms (%d tool message(s))",
            thread_id,
            elapsed_ms(),
            len(to_persist) - 2,
        )
        done = done_event(
            thread_id,
            elapsed_ms(),
            persisted=persisted,
            iteration_limit_reached=limit_reached,
            route=final_state.get("route"),
        )
        outcome.events.append(done)
        yield done

    async def run_turn(self, text: str, thread_id: str | None = None) -> TurnOutcome:
        """Non-streaming variant: drain the turn and return its outcome."""
        outcome = TurnOutcome()
        async for _ in self.stream_turn(text, thread_id, outcome):
            pass
        return outcome


async def build_chat_service(settings: Settings) -> ChatService:
    """Wire the store, tools, retrieval, router and model from settings."""
    store = await create_conversation_store(settings)

    retriever = SupabaseRetriever.from_settings(settings) if settings.retrieval_configured else None
    registry = build_tool_registry(settings, retriever)

    invoker = ModelInvoker(build_model(settings), get_system_prompt(override=settings.system_prompt))
    router = QueryRouter(build_model(settings, settings.router_model)) if settings.routing_enabled else None
    augmentor = RetrievalAugmentor(retriever, settings.retrieval_limit) if retriever is not None else None

    graph = create_graph(
        invoker,
        registry,
        router=router,
        augmentor=augmentor,
        max_iterations=settings.max_iterations,
        parallel_tool_calls=settings.parallel_tool_calls,
    )
    logger.info(
        "[AGENT] Chat service ready (model=%s, routing=%s, retrieval=%s)",
        settings.gemini_model,
        router is not None,
        augmentor is not None,
    )
    return ChatService(store, graph, max_iterations=settings.max_iterations)

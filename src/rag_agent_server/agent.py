from __future__ import annotations

import logging
from typing import Annotated, Literal, TypedDict
from uuid import uuid4

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, ToolMessage
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph
from langgraph.graph.message import add_messages
from langgraph.types import StreamWriter

from .errors import ToolInputError
from .events import message_event, thinking_event, tool_end_event, tool_start_event
from .messages import extract_text
from .model import Completion, ModelInvoker, ThinkingDelta, TokenDelta
from .retrieval import RetrievalAugmentor
from .routing import QueryRouter
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10
ITERATION_LIMIT_NOTICE = (
    "I reached my reasoning limit for this request before finishing. "
    "Please narrow the question or ask me to continue."
)


class AgentState(TypedDict):
    """Per-turn state. ``route`` is decided once per turn and never shared across turns."""

    messages: Annotated[list[AnyMessage], add_messages]
    route: str
    iterations: int
    limit_reached: bool


def initial_state(messages: list[AnyMessage]) -> AgentState:
    return {"messages": messages, "route": "general", "iterations": 0, "limit_reached": False}


def latest_user_text(messages: list[AnyMessage]) -> str:
    for message in reversed(messages):
        if isinstance(message, HumanMessage):
            return extract_text(message.content)
    return ""


def create_graph(
    invoker: ModelInvoker,
    registry: ToolRegistry,
    *,
    router: QueryRouter | None = None,
    augmentor: RetrievalAugmentor | None = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    parallel_tool_calls: bool = True,
):
    """Compile the turn loop: analyze -> (retrieve) -> model <-> tools.

    Nodes report progress through the custom stream writer; the caller consumes
    ``stream_mode=["custom", "values"]``.
    """
    tools = registry.as_langchain_tools()

    async def analyze_query(state: AgentState, writer: StreamWriter):
        if router is None:
            return {"route": "general"}
        decision = await router.classify(latest_user_text(state["messages"]))
        writer(thinking_event(decision.logic, source="router"))
        return {"route": decision.type}

    async def retrieve_context(state: AgentState, writer: StreamWriter):
        context = await augmentor.augment(latest_user_text(state["messages"]))
        if context is None:
            logger.info("[AGENT] No retrieval context; continuing as general")
            return {"route": "general"}
        writer(thinking_event("Added knowledge-base context to this turn.", source="retrieval"))
        return {"messages": [context]}

    async def call_model(state: AgentState, config: RunnableConfig, writer: StreamWriter):
        iterations = state["iterations"] + 1
        logger.info("[AGENT] Model call %d/%d", iterations, max_iterations)
        response: AIMessage | None = None
        async for event in invoker.invoke_streaming(state["messages"], tools, config=config):
            if isinstance(event, TokenDelta):
                writer(message_event(event.text))
            elif isinstance(event, ThinkingDelta):
                writer(thinking_event(event.text))
            # Tool calls are read from the completed message; ToolCallRequested is informational
            elif isinstance(event, Completion):
                response = event.message
        return {"messages": [response], "iterations": iterations}

    async def call_tools(state: AgentState, writer: StreamWriter):
        last_message = state["messages"][-1]
        calls = [
            {"name": call["name"], "args": dict(call.get("args") or {}), "id": call.get("id") or f"call_{uuid4().hex}"}
            for call in last_message.tool_calls
        ]
        # Unknown tools abort the turn before anything runs
        specs = [registry.resolve(call["name"]) for call in calls]

        for call, spec in zip(calls, specs):
            logger.info("[AGENT] Executing tool: %s", spec.name)
            try:
                shown = registry.validate_input(spec.name, call["args"]).model_dump(mode="json")
            except ToolInputError:
                shown = call["args"]
            writer(tool_start_event(spec.name, call["id"], shown, spec.status))

        results = await registry.invoke_many(calls, parallel=parallel_tool_calls)

        tool_messages: list[ToolMessage] = []
        for result, spec in zip(results, specs):
            writer(tool_end_event(result, spec.stream_event))
            tool_messages.append(
                ToolMessage(
                    content=result.observation(),
                    tool_call_id=result.call_id,
                    name=result.name,
                    status="success" if result.ok else "error",
                )
            )
        return {"messages": tool_messages}

    def stop_at_limit(state: AgentState, writer: StreamWriter):
        last_message = state["messages"][-1]
        text = extract_text(last_message.content)
        logger.warning("[AGENT] Iteration limit (%d) reached with pending tool calls", max_iterations)
        if not text:
            writer(message_event(ITERATION_LIMIT_NOTICE))
        return {"messages": [AIMessage(content=text or ITERATION_LIMIT_NOTICE)], "limit_reached": True}

    def route_query(state: AgentState) -> Literal["retrieve_context", "model"]:
        if state["route"] == "retrieval" and augmentor is not None:
            return "retrieve_context"
        return "model"

    def should_continue(state: AgentState) -> Literal["tool_node", "stop_at_limit", END]:
        last_message = state["messages"][-1]
        if not getattr(last_message, "tool_calls", None):
            return END
        if state["iterations"] >= max_iterations:
            return "stop_at_limit"
        return "tool_node"

    workflow = StateGraph(AgentState)
    workflow.add_node("analyze_query", analyze_query)
    workflow.add_node("retrieve_context", retrieve_context)
    workflow.add_node("model", call_model)
    workflow.add_node("tool_node", call_tools)
    workflow.add_node("stop_at_limit", stop_at_limit)
    workflow.add_edge(START, "analyze_query")
    workflow.add_conditional_edges("analyze_query", route_query, ["retrieve_context", "model"])
    workflow.add_edge("retrieve_context", "model")
    workflow.add_conditional_edges("model", should_continue, ["tool_node", "stop_at_limit", END])
    workflow.add_edge("tool_node", "model")
    workflow.add_edge("stop_at_limit", END)
    return workflow.compile()


def recursion_limit_for(max_iterations: int) -> int:
    """Superstep budget large enough for ``max_iterations`` model/tool cycles."""
    return 2 * max_iterations + 5

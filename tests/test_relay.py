"""Tests for SSE framing and the done guarantee."""

from __future__ import annotations

import pytest

from rag_agent_server.events import StreamEvent, done_event, message_event, tool_end_event
from rag_agent_server.relay import relay_events
from rag_agent_server.tools import ToolResult
from tests.helpers import collect, parse_sse


async def stream(*events, error: Exception | None = None):
    for event in events:
        yield event
    if error is not None:
        raise error


class TestEncoding:
    def test_event_frame(self):
        frame = message_event("héllo").encode()
        assert frame == 'event: message\ndata: {"content": "héllo"}\n\n'

    def test_rich_tag_only_on_success(self):
        ok = ToolResult(name="table_tool", call_id="c", arguments={}, output={"dataTable": {}})
        failed = ToolResult(name="table_tool", call_id="c", arguments={}, error="bad", error_kind="contract_violation")

        assert tool_end_event(ok, "table").event == "table"
        assert tool_end_event(failed, "table").event == "tool_end"
        assert tool_end_event(failed, "table").data["error"] == {"kind": "contract_violation", "message": "bad"}


class TestRelayEvents:
    """Tests for relay_events."""

    @pytest.mark.asyncio
    async def test_passes_events_in_order(self):
        frames = await collect(relay_events(stream(message_event("a"), message_event("b"), done_event("t", 5))))
        parsed = parse_sse("".join(frames))

        assert [name for name, _ in parsed] == ["message", "message", "done"]
        assert [data.get("content") for name, data in parsed[:2]] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_appends_done_when_missing(self):
        frames = await collect(relay_events(stream(message_event("a")), thread_id="t1"))
        parsed = parse_sse("".join(frames))

        assert parsed[-1][0] == "done"
        assert parsed[-1][1]["threadId"] == "t1"

    @pytest.mark.asyncio
    async def test_nothing_after_done(self):
        frames = await collect(relay_events(stream(done_event("t", 1), message_event("late"))))
        assert [name for name, _ in parse_sse("".join(frames))] == ["done"]

    @pytest.mark.asyncio
    async def test_unexpected_failure_becomes_error_then_done(self):
        frames = await collect(relay_events(stream(message_event("a"), error=RuntimeError("kaboom")), thread_id="t"))
        parsed = parse_sse("".join(frames))

        assert [name for name, _ in parsed] == ["message", "error", "done"]
        assert "kaboom" in parsed[1][1]["message"]

    @pytest.mark.asyncio
    async def test_disconnect_stops_the_turn(self):
        """Once the client is gone the source is closed and nothing more is sent."""
        closed = []

        async def source():
            try:
                yield message_event("a")
                yield message_event("b")
            finally:
                closed.append(True)

        checks = iter([False, True])

        async def is_disconnected():
            return next(checks)

        frames = await collect(relay_events(source(), is_disconnected=is_disconnected))

        assert [name for name, _ in parse_sse("".join(frames))] == ["message"]
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_stream_event_model(self):
        event = StreamEvent(event="vector_search", data={"documents": []})
        assert parse_sse(event.encode()) == [("vector_search", {"documents": []})]

"""Tests for message conversion and history replay."""

from __future__ import annotations

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from rag_agent_server.messages import (
    Message,
    coerce_content,
    extract_text,
    from_tool_message,
    split_content,
    to_langchain_messages,
)


class TestSplitContent:
    """Tests for split_content / extract_text."""

    def test_plain_string(self):
        assert split_content("hello") == ("hello", "")

    def test_text_and_thinking_blocks(self):
        content = [
            {"type": "thinking", "thinking": "Let me add. "},
            {"type": "text", "text": "2 + 2 = "},
            {"type": "text", "text": "4"},
        ]
        assert split_content(content) == ("2 + 2 = 4", "Let me add. ")
        assert extract_text(content) == "2 + 2 = 4"

    def test_ignores_unknown_blocks(self):
        assert extract_text([{"type": "image_url", "image_url": "x"}, "tail"]) == "tail"

    def test_coerce_structured_content(self):
        assert coerce_content({"a": 1}) == '{"a": 1}'


class TestToLangchainMessages:
    """Replaying stored history as model context."""

    def test_roles_map_to_message_types(self):
        history = [
            Message(role="system", content="be nice", thread_id="t"),
            Message.user("t", "hi"),
            Message.assistant("t", "hello"),
        ]
        converted = to_langchain_messages(history)
        assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage]

    def test_tool_rows_get_a_synthesized_tool_call(self):
        """Each run of tool rows is preceded by an assistant message requesting them."""
        history = [
            Message.user("t", "weather in Paris and Rome?"),
            Message(role="tool", content="sunny", thread_id="t", tool_name="get_weather", tool_call_id="c1"),
            Message(role="tool", content="rainy", thread_id="t", tool_name="get_weather", tool_call_id="c2"),
            Message.assistant("t", "Paris is sunny, Rome is rainy."),
        ]
        converted = to_langchain_messages(history)

        assert [type(m) for m in converted] == [HumanMessage, AIMessage, ToolMessage, ToolMessage, AIMessage]
        request = converted[1]
        assert [call["id"] for call in request.tool_calls] == ["c1", "c2"]
        assert [m.tool_call_id for m in converted[2:4]] == ["c1", "c2"]

    def test_uncorrelated_tool_row_becomes_context_note(self, caplog):
        """A tool row without tool_call_id is tolerated and logged."""
        history = [
            Message.user("t", "q"),
            Message(role="tool", content="result", thread_id="t", tool_name="web_scraper"),
            Message.assistant("t", "a"),
        ]
        with caplog.at_level("WARNING"):
            converted = to_langchain_messages(history)

        assert isinstance(converted[1], SystemMessage)
        assert "web_scraper" in converted[1].content
        assert "without tool_call_id" in caplog.text


class TestFromToolMessage:
    def test_keeps_correlation(self):
        stored = from_tool_message("t", ToolMessage(content="ok", tool_call_id="c9", name="table_tool"))
        assert stored.role == "tool"
        assert stored.tool_call_id == "c9"
        assert stored.tool_name == "table_tool"
        assert stored.thread_id == "t"

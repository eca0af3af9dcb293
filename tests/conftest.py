"""Shared test fixtures and configuration."""

from __future__ import annotations

import pytest

from rag_agent_server.config import Settings
from rag_agent_server.model import ModelInvoker
from rag_agent_server.retrieval import RetrievedDocument
from rag_agent_server.store import InMemoryConversationStore
from rag_agent_server.tools import ToolRegistry
from rag_agent_server.tools.code_tool import code_tool
from rag_agent_server.tools.table_tool import table_tool
from rag_agent_server.tools.time_tool import time_tool


@pytest.fixture
def settings():
    """Settings built from explicit values only (no credentials, in-memory store)."""
    return Settings(
        _env_file=None,
        GOOGLE_API_KEY=None,
        CONVERSATION_BACKEND="memory",
        ROUTING_ENABLED=False,
        MAX_ITERATIONS=4,
    )


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def registry():
    """Registry with the credential-free tools."""
    tools = ToolRegistry(default_timeout=5.0)
    tools.add(table_tool)
    tools.add(code_tool)
    tools.add(time_tool)
    return tools


@pytest.fixture
def make_invoker():
    def _make(model, template: str = "You are a helpful assistant. Time: {system_time}"):
        return ModelInvoker(model, template)

    return _make


@pytest.fixture
def sample_documents():
    return [
        RetrievedDocument(
            id="doc-1",
            content="Our office is open Monday to Friday, 9am to 5pm.",
            metadata={"title": "Opening hours"},
            score=0.91,
        ),
        RetrievedDocument(
            id="doc-2",
            content="Support can be reached at support@example.com.",
            metadata={},
            score=0.78,
        ),
    ]

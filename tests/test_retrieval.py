"""Tests for knowledge-base retrieval and augmentation."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.messages import SystemMessage

from rag_agent_server.retrieval import (
    CONTEXT_PREAMBLE,
    RetrievalAugmentor,
    RetrievedDocument,
    SupabaseRetriever,
    format_context,
)
from rag_agent_server.tools.retriever_tool import build_retriever_tool
from rag_agent_server.tools import ToolRegistry
from tests.helpers import StaticRetriever


class FixedEmbeddings(Embeddings):
    def embed_documents(self, texts):
        return [[0.1, 0.2, 0.3] for _ in texts]

    def embed_query(self, text):
        return [0.1, 0.2, 0.3]


class TestFormatContext:
    def test_titles_and_bodies(self, sample_documents):
        text = format_context(sample_documents)

        assert text.startswith(CONTEXT_PREAMBLE)
        assert "Document: Opening hours\nOur office is open" in text
        # Falls back to the id when there is no title
        assert "Document: doc-2\nSupport can be reached" in text
        assert "\n\n---\n\n" in text


class TestRetrievalAugmentor:
    """Tests for RetrievalAugmentor.augment."""

    @pytest.mark.asyncio
    async def test_matches_become_system_message(self, sample_documents):
        retriever = StaticRetriever(sample_documents)
        message = await RetrievalAugmentor(retriever, limit=5).augment("when are you open?")

        assert isinstance(message, SystemMessage)
        assert "Opening hours" in message.content
        assert retriever.queries == [("when are you open?", 5)]

    @pytest.mark.asyncio
    async def test_zero_matches_is_none(self):
        assert await RetrievalAugmentor(StaticRetriever([])).augment("anything") is None

    @pytest.mark.asyncio
    async def test_failure_is_none(self, caplog):
        """Retrieval errors are logged, not raised."""
        retriever = StaticRetriever(error=RuntimeError("vector db down"))
        with caplog.at_level("ERROR"):
            assert await RetrievalAugmentor(retriever).augment("q") is None
        assert "Error retrieving context" in caplog.text

    @pytest.mark.asyncio
    async def test_blank_text_skips_search(self):
        retriever = StaticRetriever([RetrievedDocument(content="x")])
        assert await RetrievalAugmentor(retriever).augment("   ") is None
        assert retriever.queries == []


class TestSupabaseRetriever:
    """Tests for the Supabase match RPC client."""

    @pytest.mark.asyncio
    async def test_maps_rows(self):
        rows = [
            {"id": 7, "content": "Refunds take 5 days.", "metadata": {"title": "Refunds"}, "similarity": 0.88},
            {"content": "No id here.", "metadata": {}, "similarity": 0.5},
        ]
        retriever = SupabaseRetriever("https://db.example.co/", "secret", FixedEmbeddings())
        mock_post = AsyncMock(return_value=httpx.Response(200, json=rows))
        with patch.object(httpx.AsyncClient, "post", mock_post):
            documents = await retriever.search("refund policy", limit=2, filter={"lang": "en"})

        assert [d.id for d in documents] == ["7", "result-1"]
        assert documents[0].score == 0.88
        assert documents[0].title == "Refunds"
        url = mock_post.call_args.args[0]
        body = mock_post.call_args.kwargs["json"]
        assert url == "https://db.example.co/rest/v1/rpc/match_documents"
        assert body["match_count"] == 2
        assert body["filter"] == {"lang": "en"}
        assert body["query_embedding"] == [0.1, 0.2, 0.3]

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        retriever = SupabaseRetriever("https://db.example.co", "secret", FixedEmbeddings())
        with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=httpx.Response(500, text="boom"))):
            with pytest.raises(RuntimeError):
                await retriever.search("q")


class TestRetrieverTool:
    @pytest.mark.asyncio
    async def test_returns_documents_and_count(self, sample_documents):
        registry = ToolRegistry()
        registry.add(build_retriever_tool(StaticRetriever(sample_documents)))
        result = await registry.invoke("supabase_retriever", {"query": "hours", "limit": 1})

        assert result.ok
        assert result.output["totalFound"] == 1
        assert result.output["documents"][0]["id"] == "doc-1"

    def test_rich_event_hint(self):
        assert build_retriever_tool(StaticRetriever()).stream_event == "vector_search"

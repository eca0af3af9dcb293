from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..retrieval import RetrievedDocument, Retriever
from .registry import ToolSpec


class RetrieverInput(BaseModel):
    query: str = Field(..., min_length=1, description="The search query to find relevant documents in the vector database.")
    limit: int = Field(default=5, ge=1, le=50, description="Maximum number of documents to retrieve.")
    filter: dict[str, Any] | None = Field(default=None, description="Optional metadata filters to apply to the search.")


class RetrieverOutput(BaseModel):
    documents: list[RetrievedDocument]
    totalFound: int


def build_retriever_tool(retriever: Retriever) -> ToolSpec:
    async def search_knowledge_base(payload: RetrieverInput) -> dict:
        documents = await retriever.search(payload.query, payload.limit, payload.filter)
        return {"documents": documents, "totalFound": len(documents)}

    return ToolSpec(
        name="supabase_retriever",
        description=(
            "Searches for relevant documents in the vector database based on a query. Use this tool "
            "when you need to retrieve information from the knowledge base."
        ),
        input_schema=RetrieverInput,
        output_schema=RetrieverOutput,
        invoke=search_knowledge_base,
        stream_event="vector_search",
        status="Searching the knowledge base…",
    )

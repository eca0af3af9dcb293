"""Knowledge-base retrieval and per-turn context augmentation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from langchain_core.embeddings import Embeddings
from langchain_core.messages import SystemMessage
from langchain_google_genai import GoogleGenerativeAIEmbeddings
from pydantic import BaseModel, Field

from .config import Settings

logger = logging.getLogger(__name__)

CONTEXT_PREAMBLE = "Here is relevant information to help answer the user's question:"
DOCUMENT_SEPARATOR = "\n\n---\n\n"


class RetrievedDocument(BaseModel):
    id: str | None = None
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float | None = None

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or self.id or "Untitled")


class Retriever(ABC):
    """Contract of the knowledge-base collaborator. Zero results is a valid answer."""

    @abstractmethod
    async def search(
        self,
        query: str,
        limit: int = 5,
        filter: dict[str, Any] | None = None,
    ) -> list[RetrievedDocument]:
        """Return up to ``limit`` documents relevant to ``query``."""


class SupabaseRetriever(Retriever):
    """Similarity search against a Supabase pgvector table through its match RPC."""

    def __init__(
        self,
        url: str,
        service_key: str,
        embeddings: Embeddings,
        *,
        match_function: str = "match_documents",
        timeout: float = 20.0,
    ) -> None:
        self.endpoint = f"{url.rstrip('/')}/rest/v1/rpc/{match_function}"
        self.service_key = service_key
        self.embeddings = embeddings
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseRetriever":
        embeddings = GoogleGenerativeAIEmbeddings(
            model=settings.embedding_model,
            google_api_key=settings.google_api_key,
        )
        return cls(
            settings.supabase_url or "",
            settings.supabase_service_key or "",
            embeddings,
            match_function=settings.supabase_match_function,
        )

    async def search(
        self,
        query: str,
        limit: int = 5,
        filter: dict[str, Any] | None = None,
    ) -> list[RetrievedDocument]:
        logger.info("[RETRIEVAL] Searching knowledge base (limit=%d): %s", limit, query[:120])
        vector = await self.embeddings.aembed_query(query)
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        body = {"query_embedding": vector, "match_count": limit, "filter": filter or {}}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.endpoint, json=body, headers=headers)
        if response.status_code != 200:
            raise RuntimeError(f"Vector search failed with HTTP {response.status_code}: {response.text[:200]}")

        documents = []
        for index, row in enumerate(response.json() or []):
            metadata = row.get("metadata") or {}
            documents.append(
                RetrievedDocument(
                    id=str(row.get("id") or metadata.get("id") or f"result-{index}"),
                    content=row.get("content", ""),
                    metadata=metadata,
                    score=row.get("similarity", metadata.get("score")),
                )
            )
        return documents


def format_context(documents: list[RetrievedDocument]) -> str:
    body = DOCUMENT_SEPARATOR.join(f"Document: {doc.title}\n{doc.content}" for doc in documents)
    return f"{CONTEXT_PREAMBLE}\n\n{body}"


class RetrievalAugmentor:
    """Builds the ephemeral context message injected after the user's message."""

    def __init__(self, retriever: Retriever, limit: int = 5) -> None:
        self.retriever = retriever
        self.limit = limit

    async def augment(self, user_text: str) -> SystemMessage | None:
        if not user_text.strip():
            return None
        try:
            documents = await self.retriever.search(user_text, self.limit)
        except Exception:
            logger.exception("[RETRIEVAL] Error retrieving context")
            return None
        if not documents:
            logger.info("[RETRIEVAL] No matching documents; skipping augmentation")
            return None
        logger.info("[RETRIEVAL] Injecting %d document(s) as context", len(documents))
        return SystemMessage(content=format_context(documents))

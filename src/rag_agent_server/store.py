"""Append-only conversation history, keyed by thread id."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Sequence

import asyncpg
from google.cloud import storage
from google.cloud.exceptions import NotFound

from .config import Settings
from .errors import StoreUnavailable
from .messages import Message

logger = logging.getLogger(__name__)

_MIN_STEP = timedelta(microseconds=1)
DEFAULT_MAX_TRACKED_THREADS = 4096


class ConversationStore(ABC):
    """Base class for conversation stores.

    Appends to the same thread are serialized with a per-thread lock and stamped
    so that created_at never decreases within a thread. A lock lives only while
    some append holds or waits on it; last stamps are kept for the most recently
    written threads only.
    """

    def __init__(self, *, max_tracked_threads: int = DEFAULT_MAX_TRACKED_THREADS) -> None:
        self.max_tracked_threads = max_tracked_threads
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._last_stamp: OrderedDict[str, Any] = OrderedDict()

    async def load_history(self, thread_id: str) -> list[Message]:
        """Return the thread's messages ordered by created_at (empty for unknown threads)."""
        try:
            messages = await self._load(thread_id)
        except StoreUnavailable:
            raise
        except Exception as exc:
            raise StoreUnavailable(f"Failed to load history for thread {thread_id}: {exc}") from exc
        return sorted(messages, key=lambda m: m.created_at)

    async def append_messages(self, thread_id: str, messages: Sequence[Message]) -> None:
        """Append a batch of messages atomically."""
        if not messages:
            return
        async with self._thread_lock(thread_id):
            stamped = self._stamp(thread_id, messages)
            try:
                await self._append(thread_id, stamped)
            except StoreUnavailable:
                raise
            except Exception as exc:
                raise StoreUnavailable(f"Failed to append to thread {thread_id}: {exc}") from exc
            self._remember_stamp(thread_id, stamped[-1].created_at)

    @asynccontextmanager
    async def _thread_lock(self, thread_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._lock_users[thread_id] = self._lock_users.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[thread_id] -= 1
            if not self._lock_users[thread_id]:
                del self._lock_users[thread_id]
                del self._locks[thread_id]

    def _remember_stamp(self, thread_id: str, created_at: Any) -> None:
        self._last_stamp[thread_id] = created_at
        self._last_stamp.move_to_end(thread_id)
        while len(self._last_stamp) > self.max_tracked_threads:
            self._last_stamp.popitem(last=False)

    def _stamp(self, thread_id: str, messages: Sequence[Message]) -> list[Message]:
        previous = self._last_stamp.get(thread_id)
        stamped: list[Message] = []
        for message in messages:
            created_at = message.created_at
            if previous is not None and created_at <= previous:
                created_at = previous + _MIN_STEP
            stamped.append(message.model_copy(update={"thread_id": thread_id, "created_at": created_at}))
            previous = created_at
        return stamped

    async def close(self) -> None:
        return None

    @abstractmethod
    async def _load(self, thread_id: str) -> list[Message]:
        """Fetch all stored messages of a thread."""

    @abstractmethod
    async def _append(self, thread_id: str, messages: list[Message]) -> None:
        """Persist a batch; must be all-or-nothing."""


class InMemoryConversationStore(ConversationStore):
    def __init__(self) -> None:
        super().__init__()
        self._threads: dict[str, list[Message]] = {}

    async def _load(self, thread_id: str) -> list[Message]:
        return list(self._threads.get(thread_id, ()))

    async def _append(self, thread_id: str, messages: list[Message]) -> None:
        self._threads.setdefault(thread_id, []).extend(messages)


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS conversations (
    id BIGSERIAL PRIMARY KEY,
    thread_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    tool_name TEXT,
    tool_call_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS conversations_thread_created_idx
    ON conversations (thread_id, created_at, id);
"""


class PostgresConversationStore(ConversationStore):
    """Conversation rows in a Postgres table, one row per message."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        super().__init__()
        self.pool = pool

    @classmethod
    async def from_dsn(cls, dsn: str) -> "PostgresConversationStore":
        pool = await asyncpg.create_pool(dsn)
        store = cls(pool)
        await store.setup()
        return store

    async def setup(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(_CREATE_TABLE)

    async def _load(self, thread_id: str) -> list[Message]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT thread_id, role, content, tool_name, tool_call_id, created_at
                FROM conversations
                WHERE thread_id = $1
                ORDER BY created_at ASC, id ASC
                """,
                thread_id,
            )
        return [Message(**dict(row)) for row in rows]

    async def _append(self, thread_id: str, messages: list[Message]) -> None:
        async with self.pool.acquire() as conn, conn.transaction():
            await conn.executemany(
                """
                INSERT INTO conversations (thread_id, role, content, tool_name, tool_call_id, created_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                [
                    (thread_id, m.role, m.content, m.tool_name, m.tool_call_id, m.created_at)
                    for m in messages
                ],
            )

    async def close(self) -> None:
        await self.pool.close()


class GCSConversationStore(ConversationStore):
    """Store each appended batch as one JSON blob in a Cloud Storage bucket.

    Blob names start with the batch's first timestamp so listing a thread's prefix
    returns batches in append order. A single upload is atomic, which gives the
    all-or-nothing batch semantics.
    """

    def __init__(self, bucket_name: str, *, prefix: str = "conversations", client: Any = None) -> None:
        super().__init__()
        self.client = client or storage.Client()
        self.bucket = self.client.bucket(bucket_name)
        self.prefix = prefix.strip("/")

    def _thread_prefix(self, thread_id: str) -> str:
        return f"{self.prefix}/{thread_id}/"

    def _batch_path(self, thread_id: str, messages: list[Message]) -> str:
        stamp = messages[0].created_at.strftime("%Y%m%dT%H%M%S%fZ")
        return f"{self._thread_prefix(thread_id)}{stamp}-{uuid.uuid4().hex}.json"

    def _load_sync(self, thread_id: str) -> list[Message]:
        blobs = sorted(self.bucket.list_blobs(prefix=self._thread_prefix(thread_id)), key=lambda b: b.name)
        messages: list[Message] = []
        for blob in blobs:
            try:
                payload = json.loads(blob.download_as_bytes().decode("utf-8"))
            except NotFound:
                continue
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable history batch %s", blob.name)
                continue
            messages.extend(Message.model_validate(item) for item in payload.get("messages", []))
        return messages

    def _append_sync(self, thread_id: str, messages: list[Message]) -> None:
        payload = {"messages": [m.model_dump(mode="json") for m in messages]}
        blob = self.bucket.blob(self._batch_path(thread_id, messages))
        blob.upload_from_string(json.dumps(payload, ensure_ascii=False), content_type="application/json")

    async def _load(self, thread_id: str) -> list[Message]:
        return await asyncio.to_thread(self._load_sync, thread_id)

    async def _append(self, thread_id: str, messages: list[Message]) -> None:
        await asyncio.to_thread(self._append_sync, thread_id, messages)


async def create_conversation_store(settings: Settings) -> ConversationStore:
    """Build a conversation store based on configuration."""

    backend = settings.conversation_backend
    if backend == "postgres":
        if not settings.database_url:
            raise ValueError("DATABASE_URL must be set when CONVERSATION_BACKEND=postgres")
        return await PostgresConversationStore.from_dsn(settings.database_url)

    if backend == "gcs":
        if not settings.google_cloud_storage_bucket:
            raise ValueError("GOOGLE_CLOUD_STORAGE_BUCKET must be set when CONVERSATION_BACKEND=gcs")
        return GCSConversationStore(settings.google_cloud_storage_bucket, prefix=settings.conversation_prefix)

    return InMemoryConversationStore()

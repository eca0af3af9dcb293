"""Frame turn events as a Server-Sent Events body."""

from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Awaitable, Callable

from .events import DONE, StreamEvent, done_event, error_event

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


async def relay_events(
    events: AsyncIterator[StreamEvent],
    *,
    thread_id: str = "",
    is_disconnected: DisconnectCheck | None = None,
) -> AsyncIterator[str]:
    """Encode events in order and make sure the stream ends with exactly one ``done``.

    Nothing is forwarded after ``done``. When the client goes away the turn is
    closed, which cancels any in-flight model or tool call.
    """
    started = time.perf_counter()
    finished = False
    try:
        async for event in events:
            if is_disconnected is not None and await is_disconnected():
                logger.info("[RELAY] Client disconnected; cancelling turn for thread %s", thread_id)
                return
            yield event.encode()
            if event.event == DONE:
                finished = True
                break
    except Exception as exc:
        logger.exception("[RELAY] Turn failed outside the orchestration loop")
        yield error_event(f"Internal error: {exc}", kind="internal_error").encode()
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()
    if not finished:
        elapsed = int((time.perf_counter() - started) * 1000)
        yield done_event(thread_id, elapsed).encode()

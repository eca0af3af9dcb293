from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from .errors import StoreUnavailable
from .relay import relay_events
from .schemas import ChatRequest, HealthResponse, HistoryResponse, InvokeResponse, MessageEnvelope
from .service import ChatService, new_thread_id

router = APIRouter()

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_chat_service(request: Request) -> ChatService:
    service = getattr(request.app.state, "chat_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Chat service is not ready")
    return service


@router.get("/healthz", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    return HealthResponse()


@router.post("/agent/chat")
async def chat(
    payload: ChatRequest,
    request: Request,
    service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """Stream one turn as Server-Sent Events; the stream always ends with ``done``."""
    thread_id = payload.thread_id or new_thread_id()
    logger.info("[API] Chat turn for thread %s", thread_id)
    events = service.stream_turn(payload.message, thread_id)
    return StreamingResponse(
        relay_events(events, thread_id=thread_id, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/invoke", response_model=InvokeResponse)
async def invoke(
    payload: ChatRequest,
    service: ChatService = Depends(get_chat_service),
):
    outcome = await service.run_turn(payload.message, payload.thread_id)
    if outcome.error:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=outcome.error)
    return InvokeResponse(
        thread_id=outcome.thread_id,
        answer=outcome.answer,
        messages=[MessageEnvelope.from_message(message) for message in outcome.messages],
        persisted=outcome.persisted,
        iteration_limit_reached=outcome.iteration_limit_reached,
    )


@router.get("/threads/{thread_id}/messages", response_model=HistoryResponse)
async def thread_messages(
    thread_id: str,
    service: ChatService = Depends(get_chat_service),
):
    try:
        history = await service.history(thread_id)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return HistoryResponse(
        thread_id=thread_id,
        messages=[MessageEnvelope.from_message(message) for message in history],
    )

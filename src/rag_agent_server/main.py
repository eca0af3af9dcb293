from __future__ import annotations

import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .config import Settings, get_settings
from .service import ChatService, build_chat_service

# Configure logging for the entire rag_agent_server package
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

# Set our package to INFO level
logging.getLogger("rag_agent_server").setLevel(logging.INFO)

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, service: ChatService | None = None) -> FastAPI:
    """Build the app. A prebuilt ``service`` skips wiring from settings at startup."""
    resolved_settings = settings or get_settings()
    app = FastAPI(
        title="RAG Agent Server",
        description="Streaming chat agent with retrieval and tools",
        version="0.1.0",
        debug=resolved_settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.state.chat_service = service

    @app.on_event("startup")
    async def startup_event():
        logger.info("RAG Agent Server starting up")
        if app.state.chat_service is None:
            app.state.chat_service = await build_chat_service(resolved_settings)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("RAG Agent Server shutting down")
        if app.state.chat_service is not None:
            await app.state.chat_service.close()

    return app


app = create_app()

"""Tool registry for the agent server."""

from __future__ import annotations

import logging

from ..config import Settings
from ..retrieval import Retriever
from .code_tool import code_tool
from .image_search_tool import build_image_search_tool
from .places_tool import build_places_tool
from .registry import ToolRegistry, ToolResult, ToolSpec
from .retriever_tool import build_retriever_tool
from .scraper_tool import build_scraper_tool
from .table_tool import table_tool
from .time_tool import time_tool
from .weather_tool import build_weather_tool

logger = logging.getLogger(__name__)


def build_tool_registry(settings: Settings, retriever: Retriever | None = None) -> ToolRegistry:
    """Register every tool whose credentials are configured."""

    registry = ToolRegistry(default_timeout=settings.tool_timeout_seconds)
    registry.add(table_tool)
    registry.add(code_tool)
    registry.add(time_tool)

    if retriever is not None:
        registry.add(build_retriever_tool(retriever))
    if settings.firecrawl_api_key:
        registry.add(build_scraper_tool(settings.firecrawl_api_key))
    if settings.unsplash_access_key:
        registry.add(build_image_search_tool(settings.unsplash_access_key))
    if settings.google_maps_api_key:
        registry.add(build_places_tool(settings.google_maps_api_key))
    if settings.weather_api_key:
        registry.add(build_weather_tool(settings.weather_api_key))

    logger.info("Registered %d tool(s): %s", len(registry), ", ".join(s["name"] for s in registry.list_schemas()))
    return registry


__all__ = [
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "build_tool_registry",
]

from __future__ import annotations

import logging
from functools import partial

import httpx
from pydantic import BaseModel, Field, HttpUrl

from .registry import ToolSpec

logger = logging.getLogger(__name__)

FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v1/scrape"
MAX_CONTENT_CHARS = 20000


class ScrapeInput(BaseModel):
    url: HttpUrl = Field(..., description="URL of the website or document to scrape")


class ScrapeOutput(BaseModel):
    content: str = Field(..., description="The scraped content of the website or document")


def scrape_url(payload: ScrapeInput, *, api_key: str) -> dict:
    """Scrape a page through Firecrawl and return its markdown."""

    try:
        response = httpx.post(
            FIRECRAWL_SCRAPE_URL,
            json={"url": str(payload.url), "formats": ["markdown", "html"]},
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=45.0,
        )
    except httpx.HTTPError as exc:
        logger.warning("Failed to contact Firecrawl: %s", exc)
        raise RuntimeError(f"Could not reach scraping service: {exc}") from exc

    if response.status_code != 200:
        raise RuntimeError(f"Failed to scrape website: HTTP {response.status_code}: {response.text[:200]}")

    body = response.json()
    if not body.get("success"):
        raise RuntimeError(f"Failed to scrape website: {body.get('error', 'unknown error')}")

    data = body.get("data") or {}
    metadata = data.get("metadata") or {}
    content = (
        data.get("markdown")
        or data.get("html")
        or metadata.get("description")
        or metadata.get("title")
        or "No content found"
    )
    if len(content) > MAX_CONTENT_CHARS:
        content = content[:MAX_CONTENT_CHARS] + "\n... [content truncated]"
    return {"content": content}


def build_scraper_tool(api_key: str) -> ToolSpec:
    return ToolSpec(
        name="web_scraper",
        description="Scrapes content from a website or document using the provided URL",
        input_schema=ScrapeInput,
        output_schema=ScrapeOutput,
        invoke=partial(scrape_url, api_key=api_key),
        timeout=60.0,
        status="Reading the page…",
    )

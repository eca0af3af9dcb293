from __future__ import annotations

import logging
from functools import partial

import httpx
from pydantic import BaseModel, Field

from .registry import ToolSpec

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"


class ImageSearchInput(BaseModel):
    query: str = Field(..., min_length=1, description="The search query for images.")
    # Unsplash recommends a max of 30 per page
    limit: int = Field(default=12, ge=1, le=30, description="Maximum number of images to return (default 12, max 30).")


class Image(BaseModel):
    cover: str = Field(..., description="URL of the regular size image.")
    coverThumb: str = Field(..., description="URL of the thumbnail size image.")
    user: str = Field(..., description="Name of the photographer.")
    url: str = Field(..., description="Link to the image page on Unsplash.")


class ImageSearchOutput(BaseModel):
    images: list[Image]


def search_images(payload: ImageSearchInput, *, access_key: str) -> dict:
    try:
        response = httpx.get(
            UNSPLASH_SEARCH_URL,
            params={"query": payload.query, "per_page": payload.limit, "page": 1, "client_id": access_key},
            timeout=20.0,
        )
    except httpx.HTTPError as exc:
        logger.warning("Failed to contact Unsplash: %s", exc)
        raise RuntimeError(f"Could not reach image search: {exc}") from exc

    if response.status_code == 401:
        raise RuntimeError("Unsplash rejected the access key (HTTP 401).")
    if response.status_code != 200:
        raise RuntimeError(f"Image search failed with HTTP {response.status_code}: {response.text[:200]}")

    images = [
        {
            "cover": item["urls"]["regular"],
            "coverThumb": item["urls"]["thumb"],
            "user": item["user"]["name"],
            "url": item["links"]["html"],
        }
        for item in response.json().get("results", [])
    ]
    return {"images": images}


def build_image_search_tool(access_key: str) -> ToolSpec:
    return ToolSpec(
        name="unsplash_image_search",
        description="Searches for images on Unsplash based on a query and returns a list of results.",
        input_schema=ImageSearchInput,
        output_schema=ImageSearchOutput,
        invoke=partial(search_images, access_key=access_key),
        timeout=30.0,
        stream_event="image_search",
        status="Looking for images…",
    )

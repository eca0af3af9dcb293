from __future__ import annotations

import logging
from functools import partial

import httpx
from pydantic import BaseModel, Field

from .registry import ToolSpec

logger = logging.getLogger(__name__)

PLACES_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"


class PlacesInput(BaseModel):
    latitude: float = Field(..., ge=-90, le=90, description="Latitude of the center point for the search.")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude of the center point for the search.")
    radius: float = Field(..., ge=1, le=50000, description="Search radius in meters (max 50000).")
    query: str | None = Field(
        default=None,
        description='Keywords to filter place types (e.g., "restaurant", "museum", "park", "monument").',
    )


class Place(BaseModel):
    name: str
    address: str | None = None
    types: list[str] | None = None
    rating: float | None = None
    user_ratings_total: int | None = None


class PlacesOutput(BaseModel):
    places: list[Place]


def find_places(payload: PlacesInput, *, api_key: str) -> dict:
    params = {
        "location": f"{payload.latitude},{payload.longitude}",
        "radius": payload.radius,
        "key": api_key,
    }
    if payload.query:
        params["keyword"] = payload.query

    try:
        response = httpx.get(PLACES_NEARBY_URL, params=params, timeout=20.0)
    except httpx.HTTPError as exc:
        logger.warning("Failed to contact Google Places: %s", exc)
        raise RuntimeError(f"Could not reach places service: {exc}") from exc

    if response.status_code != 200:
        raise RuntimeError(f"Places search failed with HTTP {response.status_code}")

    data = response.json()
    status = data.get("status")
    if status not in ("OK", "ZERO_RESULTS"):
        raise RuntimeError(f"Places API error: {status} {data.get('error_message', '')}".strip())

    places = [
        {
            "name": item.get("name", "Unknown"),
            "address": item.get("vicinity"),
            "types": item.get("types"),
            "rating": item.get("rating"),
            "user_ratings_total": item.get("user_ratings_total"),
        }
        for item in data.get("results", [])
    ]
    return {"places": places}


def build_places_tool(api_key: str) -> ToolSpec:
    return ToolSpec(
        name="google_maps_places_finder",
        description=(
            "Finds places of interest (like restaurants, museums, parks, monuments) near specific "
            "geographic coordinates using Google Maps Places API."
        ),
        input_schema=PlacesInput,
        output_schema=PlacesOutput,
        invoke=partial(find_places, api_key=api_key),
        timeout=30.0,
        stream_event="places",
        status="Searching nearby places…",
    )

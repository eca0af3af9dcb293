from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import partial

import httpx
from pydantic import BaseModel, Field

from .registry import ToolSpec

logger = logging.getLogger(__name__)

WEATHER_API_URL = "https://api.weatherapi.com/v1/current.json"


class WeatherInput(BaseModel):
    city: str = Field(..., min_length=1, description="The name of the city to get weather information for.")


class WeatherData(BaseModel):
    temperature: float = Field(..., description="Current temperature in Celsius.")
    condition: str = Field(..., description="Weather condition (e.g., Sunny, Cloudy, Rainy).")
    humidity: float = Field(..., description="Humidity percentage.")
    windSpeed: float = Field(..., description="Wind speed in km/h.")
    location: str = Field(..., description="Location name returned by the weather service.")


class WeatherOutput(BaseModel):
    weather: WeatherData
    timestamp: str


def lookup_weather(payload: WeatherInput, *, api_key: str) -> dict:
    """Fetch current conditions for a city from weatherapi.com.

    Raises:
        RuntimeError: If the weather service rejects the request.
    """

    try:
        response = httpx.get(
            WEATHER_API_URL,
            params={"key": api_key, "q": payload.city.strip(), "aqi": "no"},
            timeout=15.0,
        )
    except httpx.HTTPError as exc:
        logger.warning("Failed to contact weather service: %s", exc)
        raise RuntimeError(f"Could not reach weather service: {exc}") from exc

    if response.status_code != 200:
        raise RuntimeError(f"Weather lookup failed with HTTP {response.status_code}: {response.text[:200]}")

    data = response.json()
    current = data["current"]
    location = data["location"]
    return {
        "weather": {
            "temperature": current["temp_c"],
            "condition": current["condition"]["text"],
            "humidity": current["humidity"],
            "windSpeed": current["wind_kph"],
            "location": f"{location['name']}, {location['country']}",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def build_weather_tool(api_key: str) -> ToolSpec:
    return ToolSpec(
        name="get_weather",
        description="Get current weather information for a specific city.",
        input_schema=WeatherInput,
        output_schema=WeatherOutput,
        invoke=partial(lookup_weather, api_key=api_key),
        timeout=20.0,
        status="Checking the weather…",
    )

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel

from .registry import ToolSpec


class TimeInput(BaseModel):
    pass


class TimeOutput(BaseModel):
    utc: str


def get_current_time_utc(_: TimeInput) -> dict:
    """Return the current time in UTC (ISO8601)."""

    return {"utc": datetime.now(timezone.utc).isoformat()}


time_tool = ToolSpec(
    name="get_current_time_utc",
    description="Return the current time in UTC (ISO8601).",
    input_schema=TimeInput,
    output_schema=TimeOutput,
    invoke=get_current_time_utc,
    timeout=5.0,
    status="Checking the time…",
)

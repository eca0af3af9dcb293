"""Modular system prompts for the agent.

Prompt sections are stored as separate .txt files and composed in order. Set
SYSTEM_PROMPT in env to override them with a single custom prompt. The
``{system_time}`` marker is substituted on every model call.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

# Order of prompt sections (filenames without .txt)
PROMPT_SECTION_ORDER = (
    "base",
    "tools",
    "formatting",
)

SYSTEM_TIME_MARKER = "{system_time}"


def _prompts_dir() -> Path:
    """Directory containing prompt .txt files (next to this __init__.py)."""
    return Path(__file__).resolve().parent


def _load_section(name: str) -> str:
    """Load a single prompt section by name (without .txt)."""
    path = _prompts_dir() / f"{name}.txt"
    if not path.exists():
        logger.warning("Prompt section not found: %s", path)
        return ""
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning("Failed to read prompt section %s: %s", name, e)
        return ""


def build_system_prompt(
    *,
    section_order: tuple[str, ...] | None = None,
    separator: str = "\n\n",
) -> str:
    """Build the full system prompt by loading and joining prompt sections in order."""
    order = section_order or PROMPT_SECTION_ORDER
    parts = []
    for name in order:
        content = _load_section(name)
        if content:
            parts.append(content)
    return separator.join(parts)


def get_system_prompt(override: str | None = None) -> str:
    """Return the system prompt template (override from env wins over the sections)."""
    if override and override.strip():
        return override.strip()
    return build_system_prompt()


def get_router_prompt() -> str:
    return _load_section("router")


def render_system_prompt(template: str, now: datetime | None = None) -> str:
    """Substitute the current time into the template."""
    moment = now or datetime.now(timezone.utc)
    return template.replace(SYSTEM_TIME_MARKER, moment.isoformat())


__all__ = [
    "PROMPT_SECTION_ORDER",
    "build_system_prompt",
    "get_router_prompt",
    "get_system_prompt",
    "render_system_prompt",
]

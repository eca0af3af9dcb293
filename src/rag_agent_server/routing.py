"""Classify a user turn as general, retrieval or tool."""

from __future__ import annotations

import logging
from typing import Literal

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from .prompts import get_router_prompt

logger = logging.getLogger(__name__)

RouteType = Literal["general", "retrieval", "tool"]


class RouteDecision(BaseModel):
    """Routing decision for one user turn."""

    type: RouteType = Field(..., description="Exactly one of: retrieval, tool, general")
    logic: str = Field(..., description="One-sentence rationale for the choice")


def general_route(logic: str) -> RouteDecision:
    return RouteDecision(type="general", logic=logic)


class QueryRouter:
    """Structured-output classifier. Never raises: failures route to general."""

    def __init__(self, model: BaseChatModel, prompt: str | None = None) -> None:
        self.model = model
        self.prompt = prompt or get_router_prompt()

    async def classify(self, user_text: str) -> RouteDecision:
        if not user_text or not user_text.strip():
            return general_route("No message to classify")
        try:
            classifier = self.model.with_structured_output(RouteDecision)
            result = await classifier.ainvoke(
                [SystemMessage(content=self.prompt), HumanMessage(content=user_text)]
            )
            decision = result if isinstance(result, RouteDecision) else RouteDecision.model_validate(result)
        except Exception as exc:
            logger.warning("[ROUTER] Classification failed, routing as general: %s", exc)
            return general_route("Could not classify the question; answering directly.")
        logger.info("[ROUTER] Routed as %s: %s", decision.type, decision.logic)
        return decision

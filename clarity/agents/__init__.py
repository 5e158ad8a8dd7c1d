"""AI Agents package."""

from clarity.agents.ai_agents import (
    AIServiceError,
    CategorizationAgent,
    CategorizeRequest,
    CategorizeResponse,
    SavingTipsAgent,
    TipsRequest,
    TipsResponse,
    extract_json,
)

__all__ = [
    "AIServiceError",
    "CategorizationAgent",
    "CategorizeRequest",
    "CategorizeResponse",
    "SavingTipsAgent",
    "TipsRequest",
    "TipsResponse",
    "extract_json",
]

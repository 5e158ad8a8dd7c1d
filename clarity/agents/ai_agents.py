"""
AI Agents for Clarity Budgets

DESIGN DECISION: Each AI feature is a single prompt with a pydantic
request and response schema:
1. Requests are validated before anything is sent
2. Replies are parsed as JSON and validated against the response schema
3. Anything else is an AIServiceError - no partial results, no retries

CRITICAL BOUNDARIES:

1. CATEGORIZATION AGENT:
   - CAN: Pick one of the user's own category names for a description
   - CANNOT: Create categories or assign the expense itself
   - The caller checks the answer against the real category list

2. SAVING TIPS AGENT:
   - CAN: Turn a spending summary into advice
   - ONLY SEES: Totals and per-category sums, never individual records

The LLM is an ADVISOR. The user decides what gets written.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
from pydantic import BaseModel, Field, ValidationError

from clarity.config import get_settings
from clarity.config.settings import GeminiSettings


# Same thresholds the tips prompt has always used
TIPS_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_ONLY_HIGH"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_LOW_AND_ABOVE"},
]


class AIServiceError(Exception):
    """The AI call failed or returned something unusable."""

    def __init__(self, service: str, message: str = "AI error"):
        self.service = service
        super().__init__(message)


# =============================================================================
# CONTRACTS
# =============================================================================

class CategorizeRequest(BaseModel):
    """What the categorization prompt is given."""

    description: str = Field(
        ...,
        min_length=1,
        description="The description of the expense."
    )
    categories: list[str] = Field(
        default_factory=list,
        description="Names of the categories the user has."
    )


class CategorizeResponse(BaseModel):
    """What the categorization prompt must return."""

    category: str = Field(
        ...,
        min_length=1,
        description="The predicted category of the expense."
    )
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="The confidence level of the categorization (0-1)."
    )


class TipsRequest(BaseModel):
    spending_habits: str = Field(
        ...,
        min_length=1,
        description="A summary of the user's spending habits, including categories and amounts."
    )


class TipsResponse(BaseModel):
    saving_tips: str = Field(
        ...,
        min_length=1,
        description="Personalized saving tips based on the spending habits."
    )


def extract_json(text: str) -> dict[str, Any]:
    """
    Pull the first JSON object out of a model reply.

    Models sometimes wrap JSON in prose or code fences.
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ValueError("No JSON object in response")
    return json.loads(text[start:end])


class _GeminiAgent:
    """Shared model setup for the agents below."""

    max_output_tokens = 512

    def __init__(self, model: Optional[Any] = None):
        """
        Args:
            model: A configured GenerativeModel. Built from GeminiSettings
                   when omitted; pass one in for tests.
        """
        if model is None:
            self._settings = get_settings().gemini
            model = self._configure_genai(self._settings)
        self._model = model

    def _configure_genai(self, settings: GeminiSettings):
        """Configure Google Generative AI."""
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": min(self.max_output_tokens, settings.max_tokens),
                "response_mime_type": "application/json",
            },
        )

    async def _generate(self, service: str, prompt: str, **kwargs) -> str:
        try:
            response = await self._model.generate_content_async(prompt, **kwargs)
            return response.text.strip()
        except Exception as e:
            raise AIServiceError(service, f"AI error: {e}") from e


class CategorizationAgent(_GeminiAgent):
    """
    Suggests a category for an expense description.

    BOUNDARIES:
    - NEVER persists anything
    - The answer may name a category the user doesn't have;
      the caller treats that as an unresolved suggestion
    """

    max_output_tokens = 256

    def build_prompt(self, request: CategorizeRequest) -> str:
        if request.categories:
            choices = ", ".join(f'"{name}"' for name in request.categories)
        else:
            choices = "(none yet - suggest a short, general category name)"

        return f"""You are a personal finance expert. Given the description of an expense, you will determine the most appropriate category for it.

Description: {request.description}

Available categories: {choices}

Pick exactly one of the available categories. Respond with ONLY a JSON object in this exact format:
{{"category": "category name", "confidence": 0.8}}

confidence is a number between 0 and 1."""

    async def suggest_category(self, request: CategorizeRequest) -> CategorizeResponse:
        """
        Ask the model for a category.

        Raises:
            AIServiceError: On any service failure or a reply that doesn't
                match CategorizeResponse
        """
        text = await self._generate("categorize", self.build_prompt(request))
        try:
            return CategorizeResponse.model_validate(extract_json(text))
        except (ValueError, ValidationError) as e:
            raise AIServiceError("categorize", f"AI error: unusable reply ({e})") from e


class SavingTipsAgent(_GeminiAgent):
    """Generates saving tips from a spending summary."""

    max_output_tokens = 1024

    def build_prompt(self, request: TipsRequest) -> str:
        return f"""You are a personal finance advisor. Based on the user's spending habits, provide personalized saving tips.

Spending Habits:
{request.spending_habits}

Respond with ONLY a JSON object in this exact format:
{{"saving_tips": "the tips as a short markdown list"}}"""

    async def generate_tips(self, request: TipsRequest) -> TipsResponse:
        """
        Ask the model for saving tips.

        Raises:
            AIServiceError: On any service failure or an unusable reply
        """
        text = await self._generate(
            "saving_tips",
            self.build_prompt(request),
            safety_settings=TIPS_SAFETY_SETTINGS,
        )
        try:
            return TipsResponse.model_validate(extract_json(text))
        except (ValueError, ValidationError) as e:
            raise AIServiceError("saving_tips", f"AI error: unusable reply ({e})") from e

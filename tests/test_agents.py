"""Tests for the Gemini agents, with the model mocked out."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from clarity.agents import (
    AIServiceError,
    CategorizationAgent,
    CategorizeRequest,
    SavingTipsAgent,
    TipsRequest,
    extract_json,
)
from clarity.agents.ai_agents import TIPS_SAFETY_SETTINGS


def mock_model(text=None, error=None):
    model = MagicMock()
    if error is not None:
        model.generate_content_async = AsyncMock(side_effect=error)
    else:
        model.generate_content_async = AsyncMock(return_value=MagicMock(text=text))
    return model


class TestExtractJson:

    def test_plain_json(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_json_in_code_fence(self):
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_no_json(self):
        with pytest.raises(ValueError):
            extract_json("I cannot help with that")


class TestCategorizationAgent:

    @pytest.mark.asyncio
    async def test_suggest_category(self):
        model = mock_model('{"category": "Groceries", "confidence": 0.92}')
        agent = CategorizationAgent(model=model)

        response = await agent.suggest_category(CategorizeRequest(
            description="Weekly shop at Tesco",
            categories=["Groceries", "Transport"],
        ))

        assert response.category == "Groceries"
        assert response.confidence == pytest.approx(0.92)
        prompt = model.generate_content_async.call_args[0][0]
        assert "Weekly shop at Tesco" in prompt
        assert '"Groceries", "Transport"' in prompt

    @pytest.mark.asyncio
    async def test_confidence_out_of_range(self):
        agent = CategorizationAgent(model=mock_model('{"category": "Food", "confidence": 7}'))
        with pytest.raises(AIServiceError):
            await agent.suggest_category(CategorizeRequest(description="Lunch"))

    @pytest.mark.asyncio
    async def test_unparseable_reply(self):
        agent = CategorizationAgent(model=mock_model("Groceries, probably"))
        with pytest.raises(AIServiceError):
            await agent.suggest_category(CategorizeRequest(description="Lunch"))

    @pytest.mark.asyncio
    async def test_service_failure(self):
        agent = CategorizationAgent(model=mock_model(error=RuntimeError("quota exceeded")))
        with pytest.raises(AIServiceError) as exc_info:
            await agent.suggest_category(CategorizeRequest(description="Lunch"))
        assert exc_info.value.service == "categorize"
        assert str(exc_info.value).startswith("AI error")

    def test_request_requires_description(self):
        with pytest.raises(ValueError):
            CategorizeRequest(description="")


class TestSavingTipsAgent:

    @pytest.mark.asyncio
    async def test_generate_tips(self):
        model = mock_model('{"saving_tips": "- Cook at home more often"}')
        agent = SavingTipsAgent(model=model)

        response = await agent.generate_tips(TipsRequest(
            spending_habits="Total Spending: $500.00\nDining Out: $300.00",
        ))

        assert "Cook at home" in response.saving_tips
        kwargs = model.generate_content_async.call_args[1]
        assert kwargs["safety_settings"] == TIPS_SAFETY_SETTINGS

    @pytest.mark.asyncio
    async def test_empty_tips_rejected(self):
        agent = SavingTipsAgent(model=mock_model('{"saving_tips": ""}'))
        with pytest.raises(AIServiceError):
            await agent.generate_tips(TipsRequest(spending_habits="Total Spending: $0.00"))

"""Smoke tests against real provider APIs. Skipped without API keys."""

from __future__ import annotations

import os

import pytest

from devagent.llm.adapters.anthropic_adapter import AnthropicAdapter
from devagent.llm.adapters.openai_adapter import OpenAICompatibleAdapter
from devagent.llm.models import CompletionRequest, StopReason, Turn

SMOKE_MODEL = "claude-sonnet-4-5"


@pytest.mark.smoke
class TestSmokeProviders:
    async def test_anthropic_round_trip(self, requires_anthropic_key) -> None:  # noqa: ARG002
        adapter = AnthropicAdapter(api_key=os.environ["ANTHROPIC_API_KEY"])
        response = await adapter.complete(
            CompletionRequest(
                system_text="Reply with a single word.",
                history=[Turn.human("Say hello.")],
                model=SMOKE_MODEL,
                max_output_tokens=32,
            )
        )
        assert response.text().strip()
        assert response.stop_reason == StopReason.END_TURN

    async def test_xai_round_trip(self, requires_xai_key) -> None:  # noqa: ARG002
        adapter = OpenAICompatibleAdapter(api_key=os.environ["XAI_API_KEY"], provider="xai")
        try:
            response = await adapter.complete(
                CompletionRequest(
                    system_text="Reply with a single word.",
                    history=[Turn.human("Say hello.")],
                    model="grok-4-1-fast-reasoning",
                    max_output_tokens=64,
                )
            )
        finally:
            await adapter.aclose()
        assert response.text().strip()

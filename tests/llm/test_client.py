"""Tests for LLMClient: rate-limit retry and provider selection."""

from __future__ import annotations

import pytest

from devagent.config import AgentConfig
from devagent.llm.adapters.anthropic_adapter import AnthropicAdapter
from devagent.llm.adapters.openai_adapter import OpenAICompatibleAdapter
from devagent.llm.client import LLMClient
from devagent.llm.errors import ConfigurationError, RateLimitError, ServerError
from devagent.llm.models import CompletionRequest, CompletionResponse, RetryPolicy, TextBlock

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ScriptedAdapter:
    def __init__(self, items: list) -> None:
        self._items = list(items)
        self.calls = 0

    def provider_name(self) -> str:
        return "scripted"

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.calls += 1
        item = self._items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _ok(text: str = "ok") -> CompletionResponse:
    return CompletionResponse(content_blocks=[TextBlock(text=text)])


# ---------------------------------------------------------------------------
# Retry behaviour
# ---------------------------------------------------------------------------


class TestRetry:
    async def test_rate_limits_back_off_exponentially(self) -> None:
        adapter = ScriptedAdapter([RateLimitError("429")] * 3 + [_ok("finally")])
        sleep = FakeSleep()
        client = LLMClient(adapter, sleep=sleep)

        response = await client.complete(CompletionRequest())

        assert response.text() == "finally"
        assert adapter.calls == 4
        assert sleep.delays == [2.0, 4.0, 8.0]

    async def test_exhausted_retries_reraise(self) -> None:
        adapter = ScriptedAdapter([RateLimitError("429")] * 3)
        sleep = FakeSleep()
        client = LLMClient(adapter, RetryPolicy(max_retries=2), sleep=sleep)

        with pytest.raises(RateLimitError):
            await client.complete(CompletionRequest())
        assert adapter.calls == 3
        assert sleep.delays == [2.0, 4.0]

    async def test_other_errors_are_not_retried(self) -> None:
        adapter = ScriptedAdapter([ServerError("500")])
        sleep = FakeSleep()

        with pytest.raises(ServerError):
            await LLMClient(adapter, sleep=sleep).complete(CompletionRequest())
        assert adapter.calls == 1
        assert sleep.delays == []

    async def test_retry_after_is_honoured_and_capped(self) -> None:
        adapter = ScriptedAdapter(
            [RateLimitError("429", retry_after=9.0), RateLimitError("429", retry_after=500.0), _ok()]
        )
        sleep = FakeSleep()
        client = LLMClient(adapter, RetryPolicy(max_delay_seconds=60.0), sleep=sleep)

        await client.complete(CompletionRequest())

        assert sleep.delays == [9.0, 60.0]

    async def test_on_retry_callback(self) -> None:
        seen: list[tuple[int, float]] = []
        adapter = ScriptedAdapter([RateLimitError("429"), _ok()])
        client = LLMClient(
            adapter, sleep=FakeSleep(), on_retry=lambda attempt, exc, delay: seen.append((attempt, delay))
        )
        await client.complete(CompletionRequest())
        assert seen == [(0, 2.0)]


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


class TestFromConfig:
    def test_anthropic(self, tmp_path) -> None:
        config = AgentConfig(workdir=tmp_path, anthropic_api_key="sk-ant-test")
        client = LLMClient.from_config(config)
        assert isinstance(client.adapter, AnthropicAdapter)
        assert client.retry_policy is config.retry_policy

    def test_xai(self, tmp_path) -> None:
        config = AgentConfig(workdir=tmp_path, provider="xai", xai_api_key="xai-test")
        client = LLMClient.from_config(config)
        assert isinstance(client.adapter, OpenAICompatibleAdapter)
        assert client.adapter.provider_name() == "xai"

    def test_missing_key(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="XAI_API_KEY"):
            LLMClient.from_config(AgentConfig(workdir=tmp_path, provider="xai"))

    def test_unknown_provider(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="Unknown provider"):
            LLMClient.from_config(AgentConfig(workdir=tmp_path, provider="mystery"))

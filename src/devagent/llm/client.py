"""LLM client: one provider adapter wrapped in a rate-limit retry policy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from devagent.llm.adapters.base import ProviderAdapter
from devagent.llm.errors import ConfigurationError, RateLimitError
from devagent.llm.models import CompletionRequest, CompletionResponse, RetryPolicy

if TYPE_CHECKING:
    from devagent.config import AgentConfig

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class LLMClient:
    """Provider-agnostic completion client.

    Only :class:`RateLimitError` is retried; every other failure,
    including malformed-content errors, propagates on the first attempt
    so the caller's own error path runs.

    Args:
        adapter: The vendor adapter to send requests through.
        retry_policy: Backoff configuration.
        sleep: Awaitable sleep used between attempts. Tests inject a
            fake clock here.
        on_retry: Optional callback ``(attempt, exc, delay)``.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        on_retry: Callable[[int, Exception, float], None] | None = None,
    ) -> None:
        self._adapter = adapter
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._on_retry = on_retry

    @property
    def adapter(self) -> ProviderAdapter:
        return self._adapter

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @classmethod
    def from_config(cls, config: AgentConfig) -> LLMClient:
        """Build a client for the provider named in *config*.

        Raises:
            ConfigurationError: If the provider is unknown or its API key
                is missing.
        """
        provider = config.provider
        if provider == "anthropic":
            from devagent.llm.adapters.anthropic_adapter import AnthropicAdapter

            if not config.anthropic_api_key:
                raise ConfigurationError("ANTHROPIC_API_KEY is not set")
            adapter: ProviderAdapter = AnthropicAdapter(api_key=config.anthropic_api_key)
        elif provider in ("xai", "openai"):
            from devagent.llm.adapters.openai_adapter import OpenAICompatibleAdapter

            key = config.xai_api_key if provider == "xai" else config.openai_api_key
            if not key:
                env = "XAI_API_KEY" if provider == "xai" else "OPENAI_API_KEY"
                raise ConfigurationError(f"{env} is not set")
            adapter = OpenAICompatibleAdapter(
                api_key=key, base_url=config.base_url, provider=provider
            )
        else:
            raise ConfigurationError(
                f"Unknown provider '{provider}'. Expected anthropic, xai or openai."
            )
        return cls(adapter, config.retry_policy)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send *request*, backing off on rate limits.

        Returns:
            The adapter's CompletionResponse.

        Raises:
            RateLimitError: After ``max_retries`` retries are exhausted.
            SDKError: Any other failure, immediately.
        """
        attempts = self._retry_policy.max_retries + 1
        for attempt in range(attempts):
            try:
                return await self._adapter.complete(request)
            except RateLimitError as exc:
                if attempt >= self._retry_policy.max_retries:
                    raise
                delay = self._retry_policy.delay_for_attempt(attempt)
                if exc.retry_after:
                    delay = min(
                        max(delay, exc.retry_after),
                        self._retry_policy.max_delay_seconds,
                    )
                if self._on_retry:
                    self._on_retry(attempt, exc, delay)
                logger.warning(
                    "Rate limited by %s (attempt %d/%d), retrying in %.1fs",
                    self._adapter.provider_name(),
                    attempt + 1,
                    attempts,
                    delay,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

"""Base protocol for LLM provider adapters."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from devagent.llm.models import CompletionRequest, CompletionResponse


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol that all provider adapters must satisfy.

    Each adapter only translates between the canonical
    CompletionRequest/CompletionResponse models and one vendor's wire
    format. Retrying is the client's job, never the adapter's.
    """

    def provider_name(self) -> str:
        """Return the provider identifier (e.g. 'anthropic', 'xai')."""
        ...

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send one completion request."""
        ...

"""Provider adapters for the LLM layer."""

from devagent.llm.adapters.base import ProviderAdapter
from devagent.llm.adapters.anthropic_adapter import AnthropicAdapter
from devagent.llm.adapters.openai_adapter import OpenAICompatibleAdapter

__all__ = [
    "ProviderAdapter",
    "AnthropicAdapter",
    "OpenAICompatibleAdapter",
]

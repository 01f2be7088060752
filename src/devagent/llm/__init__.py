"""Provider-agnostic LLM layer: canonical models, errors, adapters, client."""

from devagent.llm.client import LLMClient
from devagent.llm.errors import (
    AccessDeniedError,
    AuthenticationError,
    ConfigurationError,
    ContextLengthError,
    InvalidRequestError,
    NetworkError,
    NotFoundError,
    ProviderError,
    QuotaExceededError,
    RateLimitError,
    RequestTimeoutError,
    SDKError,
    ServerError,
)
from devagent.llm.models import (
    CompletionRequest,
    CompletionResponse,
    ContentBlock,
    ContentKind,
    ImageBlock,
    RetryPolicy,
    Role,
    StopReason,
    TextBlock,
    TokenUsage,
    ToolDefinition,
    ToolInvocation,
    ToolOutcome,
    Turn,
)

__all__ = [
    "LLMClient",
    "AccessDeniedError",
    "AuthenticationError",
    "ConfigurationError",
    "ContextLengthError",
    "InvalidRequestError",
    "NetworkError",
    "NotFoundError",
    "ProviderError",
    "QuotaExceededError",
    "RateLimitError",
    "RequestTimeoutError",
    "SDKError",
    "ServerError",
    "CompletionRequest",
    "CompletionResponse",
    "ContentBlock",
    "ContentKind",
    "ImageBlock",
    "RetryPolicy",
    "Role",
    "StopReason",
    "TextBlock",
    "TokenUsage",
    "ToolDefinition",
    "ToolInvocation",
    "ToolOutcome",
    "Turn",
]

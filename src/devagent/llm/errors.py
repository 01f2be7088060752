"""Error hierarchy for the LLM layer.

Maps HTTP status codes and provider-specific conditions to typed
exceptions. Adapters raise these so :class:`~devagent.llm.client.LLMClient`
can decide whether a failure is worth waiting out. Only rate limiting
(429, and Anthropic's 529 "overloaded") is ever retried.
"""

from __future__ import annotations

from typing import Any


class SDKError(Exception):
    """Base exception for all LLM layer errors."""

    @property
    def is_retryable(self) -> bool:
        """Whether the client should back off and retry."""
        return False


class ProviderError(SDKError):
    """Base class for errors returned by an LLM provider.

    Attributes:
        provider: Which provider returned the error.
        status_code: HTTP status code, if applicable.
        retry_after: Seconds the provider asked us to wait, if given.
        raw: Raw error response body from the provider.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status_code: int | None = None,
        retry_after: float | None = None,
        raw: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after
        self.raw = raw


class AuthenticationError(ProviderError):
    """401: Invalid API key or expired token."""


class AccessDeniedError(ProviderError):
    """403: Insufficient permissions."""


class NotFoundError(ProviderError):
    """404: Model not found, endpoint not found."""


class RateLimitError(ProviderError):
    """429/529: Rate limited or provider overloaded."""

    @property
    def is_retryable(self) -> bool:
        return True


class ServerError(ProviderError):
    """500-599: Provider internal error."""


class RequestTimeoutError(ProviderError):
    """Request timed out."""


class InvalidRequestError(ProviderError):
    """400/422: Malformed request, invalid parameters."""


class ContextLengthError(ProviderError):
    """Input + output exceeds the context window."""


class QuotaExceededError(ProviderError):
    """Billing or usage quota exhausted."""


# ---------------------------------------------------------------------------
# Non-provider errors
# ---------------------------------------------------------------------------


class NetworkError(SDKError):
    """Network-level failure (connection refused, DNS, etc.)."""


class ConfigurationError(SDKError):
    """Misconfiguration (missing API key, unknown provider, bad settings)."""


# ---------------------------------------------------------------------------
# HTTP status code mapping
# ---------------------------------------------------------------------------

_STATUS_TO_ERROR: dict[int, type[ProviderError]] = {
    400: InvalidRequestError,
    401: AuthenticationError,
    402: QuotaExceededError,
    403: AccessDeniedError,
    404: NotFoundError,
    408: RequestTimeoutError,
    413: ContextLengthError,
    422: InvalidRequestError,
    429: RateLimitError,
    500: ServerError,
    502: ServerError,
    503: ServerError,
    504: ServerError,
    529: RateLimitError,
}


def error_from_status(
    status_code: int,
    message: str,
    *,
    provider: str = "",
    raw: dict[str, Any] | None = None,
    retry_after: float | None = None,
) -> ProviderError:
    """Create the appropriate ProviderError subclass from an HTTP status code.

    Unknown 5xx codes map to ServerError, anything else unknown to a
    plain (non-retryable) ProviderError.

    Args:
        status_code: HTTP status code from the provider response.
        message: Error message.
        provider: Provider name.
        raw: Raw error response body.
        retry_after: Seconds to wait before retrying (from Retry-After header).

    Returns:
        An instance of the appropriate ProviderError subclass.
    """
    cls = _STATUS_TO_ERROR.get(status_code)
    if cls is None:
        cls = ServerError if 500 <= status_code < 600 else ProviderError
    if cls is InvalidRequestError and "context" in message.lower():
        cls = ContextLengthError
    return cls(
        message,
        provider=provider,
        status_code=status_code,
        raw=raw,
        retry_after=retry_after,
    )

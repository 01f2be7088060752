"""Tests for devagent.llm.errors: hierarchy and status code mapping."""

from __future__ import annotations

import pytest

from devagent.llm.errors import (
    AuthenticationError,
    ConfigurationError,
    ContextLengthError,
    InvalidRequestError,
    NetworkError,
    NotFoundError,
    ProviderError,
    QuotaExceededError,
    RateLimitError,
    SDKError,
    ServerError,
    error_from_status,
)


class TestErrorHierarchy:
    def test_provider_error_is_sdk_error(self) -> None:
        assert isinstance(ProviderError("x"), SDKError)

    def test_only_rate_limit_is_retryable(self) -> None:
        assert RateLimitError("slow down").is_retryable is True
        for err in (
            ServerError("boom"),
            AuthenticationError("bad key"),
            NetworkError("dns"),
            ConfigurationError("missing"),
        ):
            assert err.is_retryable is False

    def test_provider_error_attributes(self) -> None:
        err = RateLimitError("slow", provider="xai", status_code=429, retry_after=3.0)
        assert (err.provider, err.status_code, err.retry_after) == ("xai", 429, 3.0)


class TestErrorFromStatus:
    @pytest.mark.parametrize(
        "status, expected",
        [
            (400, InvalidRequestError),
            (401, AuthenticationError),
            (402, QuotaExceededError),
            (404, NotFoundError),
            (429, RateLimitError),
            (529, RateLimitError),
            (500, ServerError),
            (599, ServerError),
        ],
    )
    def test_mapping(self, status, expected) -> None:
        err = error_from_status(status, "message", provider="anthropic")
        assert type(err) is expected
        assert err.status_code == status

    def test_unknown_4xx_is_plain_provider_error(self) -> None:
        assert type(error_from_status(418, "teapot")) is ProviderError

    def test_context_length_detected_from_message(self) -> None:
        err = error_from_status(400, "prompt exceeds the context window")
        assert isinstance(err, ContextLengthError)

    def test_retry_after_carried(self) -> None:
        assert error_from_status(429, "slow", retry_after=12.0).retry_after == 12.0

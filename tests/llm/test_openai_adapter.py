"""Tests for the OpenAI-compatible (xAI / OpenAI) adapter."""

from __future__ import annotations

import json

import httpx
import pytest

from devagent.llm.adapters.openai_adapter import (
    OpenAICompatibleAdapter,
    strip_cache_control,
    unescape_literals,
)
from devagent.llm.client import LLMClient
from devagent.llm.errors import AuthenticationError, NetworkError, RateLimitError
from devagent.llm.models import (
    CompletionRequest,
    ImageBlock,
    Role,
    StopReason,
    TextBlock,
    ToolDefinition,
    ToolInvocation,
    ToolOutcome,
    Turn,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _completion(message: dict, finish_reason: str = "stop") -> dict:
    return {
        "model": "grok-test",
        "choices": [{"message": message, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 11, "completion_tokens": 3},
    }


def _adapter(handler, provider: str = "xai") -> OpenAICompatibleAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAICompatibleAdapter(api_key="test-key", provider=provider, http_client=client)


def _request() -> CompletionRequest:
    return CompletionRequest(
        system_text="be brief",
        history=[Turn.human("hi")],
        model="grok-test",
        tools=[ToolDefinition(name="read_file", description="read", input_schema={"type": "object", "properties": {"path": {"type": "string"}}})],
    )


# ---------------------------------------------------------------------------
# Request mapping
# ---------------------------------------------------------------------------


class TestPayload:
    def test_full_history_mapping(self) -> None:
        adapter = OpenAICompatibleAdapter(api_key="k")
        request = CompletionRequest(
            system_text="system rules",
            model="grok-test",
            history=[
                Turn(
                    role=Role.HUMAN,
                    content=[TextBlock(text="what is this?"), ImageBlock(base64_data="QUJD", media_type="image/png")],
                ),
                Turn(
                    role=Role.AGENT,
                    content=[ToolInvocation(id="call_1", name="read_file", arguments={"path": "a.txt"})],
                ),
                Turn.outcomes([ToolOutcome(invocation_id="call_1", text="contents")]),
            ],
        )

        messages = adapter._build_payload(request)["messages"]

        assert messages[0] == {"role": "system", "content": "system rules"}
        assert messages[1]["content"][1] == {
            "type": "image_url",
            "image_url": {"url": "data:image/png;base64,QUJD"},
        }
        assert messages[2]["role"] == "assistant"
        assert messages[2]["content"] is None
        assert messages[2]["tool_calls"][0]["function"] == {
            "name": "read_file",
            "arguments": json.dumps({"path": "a.txt"}),
        }
        assert messages[3] == {"role": "tool", "tool_call_id": "call_1", "content": "contents"}

    def test_tools_and_tool_choice(self) -> None:
        payload = OpenAICompatibleAdapter(api_key="k")._build_payload(_request())
        assert payload["tool_choice"] == "auto"
        assert payload["tools"][0]["function"]["name"] == "read_file"
        assert payload["max_tokens"] == 4096

    def test_no_tools_no_tool_choice(self) -> None:
        payload = OpenAICompatibleAdapter(api_key="k")._build_payload(CompletionRequest(history=[Turn.human("x")]))
        assert "tools" not in payload
        assert "tool_choice" not in payload

    def test_strip_cache_control(self) -> None:
        data = {"a": [{"cache_control": {"type": "ephemeral"}, "b": 1}], "cache_control": 1}
        assert strip_cache_control(data) == {"a": [{"b": 1}]}


# ---------------------------------------------------------------------------
# Response mapping
# ---------------------------------------------------------------------------


class TestResponseMapping:
    def test_text_response(self) -> None:
        response = OpenAICompatibleAdapter(api_key="k")._map_response(
            _completion({"role": "assistant", "content": "hello"})
        )
        assert response.text() == "hello"
        assert response.stop_reason == StopReason.END_TURN
        assert response.usage.input_tokens == 11
        assert response.raw_fallback == ""

    def test_tool_calls(self) -> None:
        message = {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {"id": "c1", "type": "function", "function": {"name": "read_file", "arguments": '{"path": "a"}'}},
                {"id": "c2", "type": "function", "function": {"name": "list_files", "arguments": "not json"}},
            ],
        }
        response = OpenAICompatibleAdapter(api_key="k")._map_response(_completion(message, "tool_calls"))

        assert response.stop_reason == StopReason.TOOL_USE
        invocations = response.tool_invocations()
        assert [(i.id, i.name, i.arguments) for i in invocations] == [
            ("c1", "read_file", {"path": "a"}),
            ("c2", "list_files", {}),
        ]

    def test_malformed_tool_calls_are_skipped(self) -> None:
        message = {
            "tool_calls": [
                "junk",
                None,
                {"id": "c0", "function": "read_file"},
                {"id": "c1", "function": {"name": "read_file", "arguments": '{"path": "a"}'}},
            ]
        }
        response = OpenAICompatibleAdapter(api_key="k")._map_response(_completion(message))

        assert [(i.id, i.name) for i in response.tool_invocations()] == [("c1", "read_file")]
        assert response.stop_reason == StopReason.TOOL_USE

    def test_xai_arguments_are_unescaped(self) -> None:
        message = {
            "tool_calls": [
                {"id": "c1", "function": {"name": "write_file", "arguments": json.dumps({"content": "a\\nb"})}}
            ]
        }
        xai = OpenAICompatibleAdapter(api_key="k", provider="xai")._map_response(_completion(message))
        openai = OpenAICompatibleAdapter(api_key="k", provider="openai")._map_response(_completion(message))

        assert xai.tool_invocations()[0].arguments == {"content": "a\nb"}
        assert openai.tool_invocations()[0].arguments == {"content": "a\\nb"}

    def test_missing_message_falls_back(self) -> None:
        response = OpenAICompatibleAdapter(api_key="k")._map_response({"choices": []})
        assert response.content_blocks == []
        assert json.loads(response.raw_fallback) == {"choices": []}

    def test_unexpected_content_type_falls_back(self) -> None:
        response = OpenAICompatibleAdapter(api_key="k")._map_response(
            _completion({"role": "assistant", "content": {"weird": True}})
        )
        assert response.text() == ""
        assert "weird" in response.raw_fallback

    def test_content_parts_list(self) -> None:
        response = OpenAICompatibleAdapter(api_key="k")._map_response(
            _completion({"content": [{"type": "text", "text": "a"}, "b"]})
        )
        assert response.text() == "ab"

    @pytest.mark.parametrize(
        "finish, expected",
        [("length", StopReason.MAX_TOKENS), ("content_filter", StopReason.ERROR), ("stop", StopReason.END_TURN)],
    )
    def test_finish_reasons(self, finish, expected) -> None:
        response = OpenAICompatibleAdapter(api_key="k")._map_response(_completion({"content": "x"}, finish))
        assert response.stop_reason == expected

    def test_unescape_literals_nested(self) -> None:
        assert unescape_literals({"a": ["x\\ty"], "n": 1}) == {"a": ["x\ty"], "n": 1}


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class TestComplete:
    async def test_posts_with_bearer_auth(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion({"content": "pong"}))

        response = await _adapter(handler).complete(_request())

        assert response.text() == "pong"
        assert str(seen[0].url) == "https://api.x.ai/v1/chat/completions"
        assert seen[0].headers["authorization"] == "Bearer test-key"
        assert json.loads(seen[0].content)["model"] == "grok-test"

    async def test_status_errors_are_typed(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(401, json={"error": "bad key"}))
        with pytest.raises(AuthenticationError) as exc_info:
            await adapter.complete(_request())
        assert exc_info.value.raw == {"error": "bad key"}

    async def test_rate_limit_carries_retry_after(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(429, headers={"Retry-After": "3"}, text="slow"))
        with pytest.raises(RateLimitError) as exc_info:
            await adapter.complete(_request())
        assert exc_info.value.retry_after == 3.0

    async def test_non_json_body_falls_back(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200, text="<html>gateway</html>"))
        response = await adapter.complete(_request())
        assert response.content_blocks == []
        assert "gateway" in response.raw_fallback

    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError):
            await _adapter(handler).complete(_request())

    async def test_three_rate_limits_then_success_through_client(self) -> None:
        statuses = iter([429, 429, 429, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(statuses)
            if status == 429:
                return httpx.Response(429, text="rate limited")
            return httpx.Response(200, json=_completion({"content": "made it"}))

        delays: list[float] = []

        async def fake_sleep(delay: float) -> None:
            delays.append(delay)

        client = LLMClient(_adapter(handler), sleep=fake_sleep)
        response = await client.complete(_request())

        assert response.text() == "made it"
        assert delays == [2.0, 4.0, 8.0]

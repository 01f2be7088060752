"""Anthropic provider adapter."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import anthropic

from devagent.llm.errors import (
    NetworkError,
    RequestTimeoutError,
    error_from_status,
)
from devagent.llm.models import (
    CompletionRequest,
    CompletionResponse,
    ContentBlock,
    ImageBlock,
    Role,
    StopReason,
    TextBlock,
    TokenUsage,
    ToolDefinition,
    ToolInvocation,
    ToolOutcome,
    Turn,
)

logger = logging.getLogger(__name__)

_STOP_MAP: dict[str, StopReason] = {
    "end_turn": StopReason.END_TURN,
    "stop_sequence": StopReason.END_TURN,
    "tool_use": StopReason.TOOL_USE,
    "max_tokens": StopReason.MAX_TOKENS,
    "refusal": StopReason.ERROR,
}


def _extract_retry_after(exc: Any) -> float | None:
    """Extract the Retry-After header from an SDK exception's response."""
    response = getattr(exc, "response", None)
    if response is None:
        return None
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    retry_str = headers.get("retry-after")
    if retry_str is None:
        return None
    try:
        return float(retry_str)
    except (ValueError, TypeError):
        return None


class AnthropicAdapter:
    """Adapter for the Anthropic Messages API.

    The SDK's own retry loop is disabled (``max_retries=0``) so that
    backoff is governed solely by the injected RetryPolicy.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: Any = None,
        timeout: float = 300.0,
    ) -> None:
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._client = client or anthropic.AsyncAnthropic(
            api_key=self._api_key, max_retries=0, timeout=timeout
        )

    def provider_name(self) -> str:
        return "anthropic"

    # -----------------------------------------------------------------
    # Request mapping
    # -----------------------------------------------------------------

    @staticmethod
    def _is_tool_result_message(msg: dict[str, Any]) -> bool:
        """Check if a mapped message contains only tool_result blocks."""
        content = msg.get("content")
        if not isinstance(content, list):
            return False
        return all(
            isinstance(part, dict) and part.get("type") == "tool_result"
            for part in content
        )

    def _ensure_alternation(
        self, messages: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Anthropic requires strict user/assistant alternation.

        Consecutive user messages holding only tool_result blocks are
        merged, since every result for one assistant turn must live in a
        single user message. Any other same-role run gets a ``"..."``
        filler of the opposite role.
        """
        if not messages:
            return messages

        result: list[dict[str, Any]] = [messages[0]]
        for msg in messages[1:]:
            prev = result[-1]
            if msg["role"] == prev["role"]:
                if (
                    msg["role"] == "user"
                    and self._is_tool_result_message(prev)
                    and self._is_tool_result_message(msg)
                ):
                    prev["content"].extend(msg["content"])
                    continue
                filler_role = "user" if msg["role"] == "assistant" else "assistant"
                result.append({"role": filler_role, "content": "..."})
            result.append(msg)

        if result[0]["role"] != "user":
            result.insert(0, {"role": "user", "content": "..."})

        return result

    def _map_turns(self, history: list[Turn]) -> list[dict[str, Any]]:
        msgs = [self._map_turn(turn) for turn in history]
        return self._ensure_alternation(msgs)

    def _map_turn(self, turn: Turn) -> dict[str, Any]:
        role = "assistant" if turn.role == Role.AGENT else "user"
        parts: list[dict[str, Any]] = []
        for block in turn.blocks():
            if isinstance(block, TextBlock):
                if block.text:
                    parts.append({"type": "text", "text": block.text})
            elif isinstance(block, ImageBlock):
                parts.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": block.media_type,
                            "data": block.base64_data,
                        },
                    }
                )
            elif isinstance(block, ToolInvocation):
                parts.append(
                    {
                        "type": "tool_use",
                        "id": block.id,
                        "name": block.name,
                        "input": block.arguments,
                    }
                )
            elif isinstance(block, ToolOutcome):
                parts.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": block.invocation_id,
                        "content": block.text,
                        **({"is_error": True} if block.is_error else {}),
                    }
                )
        return {"role": role, "content": parts or [{"type": "text", "text": "..."}]}

    def _map_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.to_json_schema(),
            }
            for t in tools
        ]

    def _build_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": self._map_turns(request.history),
            "max_tokens": request.max_output_tokens,
        }
        if request.system_text:
            # The system prompt and tool catalog are identical across the
            # iterations of one turn, so they are marked as cache breakpoints.
            kwargs["system"] = [
                {
                    "type": "text",
                    "text": request.system_text,
                    "cache_control": {"type": "ephemeral"},
                }
            ]
        if request.tools:
            tools = self._map_tools(request.tools)
            tools[-1]["cache_control"] = {"type": "ephemeral"}
            kwargs["tools"] = tools
        return kwargs

    # -----------------------------------------------------------------
    # Response mapping
    # -----------------------------------------------------------------

    def _map_response(self, raw: Any) -> CompletionResponse:
        blocks: list[ContentBlock] = []
        raw_content = getattr(raw, "content", None)
        fallback = ""

        if isinstance(raw_content, str):
            if raw_content:
                blocks.append(TextBlock(text=raw_content))
        elif isinstance(raw_content, list):
            for block in raw_content:
                block_type = getattr(block, "type", None)
                if block_type == "text":
                    if block.text:
                        blocks.append(TextBlock(text=block.text))
                elif block_type == "tool_use":
                    args = block.input if isinstance(block.input, dict) else {}
                    blocks.append(
                        ToolInvocation(id=block.id, name=block.name, arguments=args)
                    )
        else:
            logger.warning(
                "Anthropic response had no usable content (%s)",
                type(raw_content).__name__,
            )
            fallback = _dump_raw(raw)

        raw_usage = getattr(raw, "usage", None)
        usage = TokenUsage(
            input_tokens=getattr(raw_usage, "input_tokens", 0) or 0,
            output_tokens=getattr(raw_usage, "output_tokens", 0) or 0,
            cache_read_tokens=getattr(raw_usage, "cache_read_input_tokens", 0) or 0,
            cache_write_tokens=getattr(raw_usage, "cache_creation_input_tokens", 0)
            or 0,
        )

        raw_reason = getattr(raw, "stop_reason", None) or "end_turn"
        stop = _STOP_MAP.get(raw_reason, StopReason.END_TURN)
        if stop != StopReason.TOOL_USE and any(
            isinstance(b, ToolInvocation) for b in blocks
        ):
            stop = StopReason.TOOL_USE

        return CompletionResponse(
            content_blocks=blocks,
            stop_reason=stop,
            usage=usage,
            model=getattr(raw, "model", "") or "",
            raw_fallback=fallback,
        )

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send a completion request to the Anthropic Messages API.

        Args:
            request: Canonical request to send.

        Returns:
            Mapped CompletionResponse.

        Raises:
            ProviderError: Translated from raw Anthropic SDK exceptions.
        """
        kwargs = self._build_kwargs(request)
        try:
            raw = await self._client.messages.create(**kwargs)
        except anthropic.APIStatusError as exc:
            raise error_from_status(
                exc.status_code,
                str(exc),
                provider="anthropic",
                retry_after=_extract_retry_after(exc),
            ) from exc
        except anthropic.APITimeoutError as exc:
            raise RequestTimeoutError(str(exc), provider="anthropic") from exc
        except anthropic.APIConnectionError as exc:
            raise NetworkError(str(exc)) from exc
        return self._map_response(raw)


def _dump_raw(raw: Any) -> str:
    """Best-effort JSON rendering of an SDK response object."""
    try:
        if hasattr(raw, "model_dump"):
            return json.dumps(raw.model_dump(), default=str)
        return json.dumps(raw, default=str)
    except (TypeError, ValueError):
        return repr(raw)

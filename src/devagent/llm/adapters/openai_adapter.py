"""OpenAI-compatible chat-completions adapter (OpenAI, xAI Grok).

Talks to ``{base_url}/chat/completions`` directly over httpx with bearer
auth, since xAI and other compatible vendors accept the same payload.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx

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

XAI_BASE_URL = "https://api.x.ai/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"


def _parse_retry_after(headers: httpx.Headers) -> float | None:
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def strip_cache_control(obj: Any) -> Any:
    """Recursively drop Anthropic-only ``cache_control`` keys."""
    if isinstance(obj, list):
        return [strip_cache_control(item) for item in obj]
    if isinstance(obj, dict):
        return {
            k: strip_cache_control(v) for k, v in obj.items() if k != "cache_control"
        }
    return obj


def unescape_literals(obj: Any) -> Any:
    """Turn literal ``\\n``/``\\t``/``\\r`` sequences into control characters.

    Some vendors double-escape strings inside tool-call arguments, so
    after JSON decoding a two-character backslash-n remains where a
    newline was meant.
    """
    if isinstance(obj, str):
        if "\\n" in obj or "\\t" in obj or "\\r" in obj:
            return obj.replace("\\n", "\n").replace("\\t", "\t").replace("\\r", "\r")
        return obj
    if isinstance(obj, list):
        return [unescape_literals(item) for item in obj]
    if isinstance(obj, dict):
        return {k: unescape_literals(v) for k, v in obj.items()}
    return obj


class OpenAICompatibleAdapter:
    """Adapter for OpenAI-style ``/chat/completions`` endpoints.

    Args:
        api_key: Bearer token. Falls back to ``XAI_API_KEY`` (or
            ``OPENAI_API_KEY`` when ``provider == "openai"``).
        base_url: API root, e.g. ``https://api.x.ai/v1``.
        provider: Name reported in errors and logs.
        unescape_arguments: Repair double-escaped tool arguments.
        http_client: Injected client, used by tests with MockTransport.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        provider: str = "xai",
        unescape_arguments: bool | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 300.0,
    ) -> None:
        env_key = "OPENAI_API_KEY" if provider == "openai" else "XAI_API_KEY"
        self._api_key = api_key or os.environ.get(env_key, "")
        self._provider = provider
        if base_url is None:
            base_url = OPENAI_BASE_URL if provider == "openai" else XAI_BASE_URL
        self._base_url = base_url.rstrip("/")
        self._unescape = (
            provider == "xai" if unescape_arguments is None else unescape_arguments
        )
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    def provider_name(self) -> str:
        return self._provider

    async def aclose(self) -> None:
        await self._http.aclose()

    # -----------------------------------------------------------------
    # Request mapping
    # -----------------------------------------------------------------

    def _map_turns(self, system_text: str, history: list[Turn]) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if system_text:
            messages.append({"role": "system", "content": system_text})
        for turn in history:
            if turn.role == Role.AGENT:
                messages.append(self._map_agent_turn(turn))
            else:
                messages.extend(self._map_human_turn(turn))
        return messages

    @staticmethod
    def _map_agent_turn(turn: Turn) -> dict[str, Any]:
        text = turn.text()
        calls = [
            {
                "id": inv.id,
                "type": "function",
                "function": {
                    "name": inv.name,
                    "arguments": json.dumps(inv.arguments),
                },
            }
            for inv in turn.tool_invocations()
        ]
        msg: dict[str, Any] = {"role": "assistant", "content": text or None}
        if calls:
            msg["tool_calls"] = calls
        elif not text:
            msg["content"] = "..."
        return msg

    @staticmethod
    def _map_human_turn(turn: Turn) -> list[dict[str, Any]]:
        # Tool results become separate role=tool messages and must come
        # straight after the assistant message that requested them.
        out: list[dict[str, Any]] = []
        parts: list[dict[str, Any]] = []
        for block in turn.blocks():
            if isinstance(block, ToolOutcome):
                out.append(
                    {
                        "role": "tool",
                        "tool_call_id": block.invocation_id,
                        "content": block.text,
                    }
                )
            elif isinstance(block, TextBlock):
                parts.append({"type": "text", "text": block.text})
            elif isinstance(block, ImageBlock):
                parts.append(
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:{block.media_type};base64,{block.base64_data}"
                        },
                    }
                )
        if parts:
            if len(parts) == 1 and parts[0]["type"] == "text":
                out.append({"role": "user", "content": parts[0]["text"]})
            else:
                out.append({"role": "user", "content": parts})
        return out

    @staticmethod
    def _map_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": strip_cache_control(t.to_json_schema()),
                },
            }
            for t in tools
        ]

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": self._map_turns(request.system_text, request.history),
            "max_tokens": request.max_output_tokens,
        }
        if request.tools:
            payload["tools"] = self._map_tools(request.tools)
            payload["tool_choice"] = "auto"
        return payload

    # -----------------------------------------------------------------
    # Response mapping
    # -----------------------------------------------------------------

    def _map_response(self, data: Any) -> CompletionResponse:
        """Translate a chat-completions payload without ever raising.

        A missing assistant message, or content that is neither a string
        nor a list of parts, yields empty content plus a JSON dump of
        the payload in ``raw_fallback``.
        """
        choice: dict[str, Any] = {}
        if isinstance(data, dict):
            choices = data.get("choices")
            if isinstance(choices, list) and choices and isinstance(choices[0], dict):
                choice = choices[0]
        message = choice.get("message")

        blocks: list[ContentBlock] = []
        fallback = ""
        if not isinstance(message, dict):
            logger.warning("%s response has no assistant message", self._provider)
            fallback = json.dumps(data, default=str)
            message = {}

        content = message.get("content")
        if isinstance(content, str):
            if content:
                blocks.append(TextBlock(text=content))
        elif isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    blocks.append(TextBlock(text=part["text"]))
                elif isinstance(part, str):
                    blocks.append(TextBlock(text=part))
        elif content is not None:
            logger.warning(
                "%s response content has unexpected type %s",
                self._provider,
                type(content).__name__,
            )
            fallback = json.dumps(data, default=str)

        tool_calls = message.get("tool_calls") or []
        for call in tool_calls if isinstance(tool_calls, list) else []:
            fn = call.get("function") if isinstance(call, dict) else None
            if not isinstance(fn, dict):
                logger.warning("Skipping malformed tool call from %s: %r", self._provider, call)
                continue
            raw_args = fn.get("arguments") or "{}"
            try:
                args = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
            except json.JSONDecodeError:
                logger.warning("Unparseable arguments for tool %s", fn.get("name"))
                args = {}
            if not isinstance(args, dict):
                args = {}
            if self._unescape:
                args = unescape_literals(args)
            blocks.append(
                ToolInvocation(id=call.get("id", ""), name=fn.get("name", ""), arguments=args)
            )

        finish = choice.get("finish_reason")
        if any(isinstance(b, ToolInvocation) for b in blocks) or finish == "tool_calls":
            stop = StopReason.TOOL_USE
        elif finish == "length":
            stop = StopReason.MAX_TOKENS
        elif finish == "content_filter":
            stop = StopReason.ERROR
        else:
            stop = StopReason.END_TURN

        usage_data = data.get("usage") if isinstance(data, dict) else None
        usage = TokenUsage()
        if isinstance(usage_data, dict):
            usage = TokenUsage(
                input_tokens=usage_data.get("prompt_tokens", 0) or 0,
                output_tokens=usage_data.get("completion_tokens", 0) or 0,
            )

        return CompletionResponse(
            content_blocks=blocks,
            stop_reason=stop,
            usage=usage,
            model=(data.get("model", "") if isinstance(data, dict) else "") or "",
            raw_fallback=fallback,
        )

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """POST one chat-completions request.

        Raises:
            ProviderError: For any non-2xx status (429/529 as RateLimitError).
            NetworkError: On connection failure.
        """
        payload = self._build_payload(request)
        logger.debug(
            "%s request: %d messages, %d tools, model=%s",
            self._provider,
            len(payload["messages"]),
            len(payload.get("tools", [])),
            request.model,
        )
        try:
            resp = await self._http.post(
                f"{self._base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(str(exc), provider=self._provider) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(str(exc)) from exc

        if resp.status_code >= 400:
            raw: dict[str, Any] | None
            try:
                raw = resp.json()
            except ValueError:
                raw = None
            raise error_from_status(
                resp.status_code,
                f"{self._provider} API error: {resp.status_code} - {resp.text[:500]}",
                provider=self._provider,
                raw=raw if isinstance(raw, dict) else None,
                retry_after=_parse_retry_after(resp.headers),
            )

        try:
            data = resp.json()
        except ValueError:
            logger.warning("%s returned a non-JSON body", self._provider)
            data = resp.text
        return self._map_response(data)

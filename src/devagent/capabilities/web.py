"""The ``web`` capability: HTTP fetches for docs and API checks."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from devagent.agent.tools.registry import Tool, ToolContext
from devagent.llm.models import ToolDefinition

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = httpx.Timeout(connect=10, read=30, write=10, pool=10)


async def fetch_url(arguments: dict[str, Any], ctx: ToolContext) -> str:
    url: str = arguments["url"]
    method: str = arguments.get("method", "GET")
    if not url.startswith(("http://", "https://")):
        return f"Error: Only http(s) URLs are supported: {url}"

    async with httpx.AsyncClient(timeout=FETCH_TIMEOUT, follow_redirects=True) as client:
        try:
            resp = await client.request(method, url)
        except httpx.TimeoutException:
            return f"Error: Request to {url} timed out."
        except httpx.HTTPError as exc:
            return f"Error fetching {url}: {exc}"

    body = resp.text
    if "json" in resp.headers.get("content-type", ""):
        try:
            body = json.dumps(resp.json(), indent=2, ensure_ascii=False)
        except ValueError:
            pass
    header = f"HTTP {resp.status_code} {resp.reason_phrase} ({url})"
    if resp.status_code >= 400:
        return f"Error: {header}\n{body}"
    return f"{header}\n{body}"


FETCH_URL_DEF = ToolDefinition(
    name="fetch_url",
    description="Fetch a URL and return the status line and response body.",
    input_schema={
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "Absolute http(s) URL."},
            "method": {"type": "string", "enum": ["GET", "HEAD"]},
        },
        "required": ["url"],
    },
)


def create_tools() -> list[Tool]:
    return [Tool(FETCH_URL_DEF, fetch_url)]

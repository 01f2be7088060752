"""Text sanitization for anything crossing a JSON API boundary.

Python strings can carry unpaired UTF-16 surrogates (U+D800..U+DFFF), for
example after ``json.loads`` of a truncated escape sequence or a
``surrogateescape`` decode. Vendors reject request bodies containing them,
so every text payload is passed through :func:`sanitize` first.
"""

from __future__ import annotations

import logging
from typing import Any

from devagent.llm.models import (
    ContentBlock,
    TextBlock,
    ToolInvocation,
    ToolOutcome,
    Turn,
)

logger = logging.getLogger(__name__)

_HIGH_START, _HIGH_END = 0xD800, 0xDBFF
_LOW_START, _LOW_END = 0xDC00, 0xDFFF


def _is_high(cp: int) -> bool:
    return _HIGH_START <= cp <= _HIGH_END


def _is_low(cp: int) -> bool:
    return _LOW_START <= cp <= _LOW_END


def sanitize(text: Any) -> str:
    """Return *text* with every lone surrogate code unit removed.

    A high surrogate immediately followed by a low surrogate is a valid
    pair and is kept, joined into the single character it encodes. The
    result contains no surrogate code points at all, which makes the
    function idempotent.

    Args:
        text: Any value; ``None`` becomes ``""`` and non-strings are
            converted with ``str()``.

    Returns:
        The sanitized string.
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    # Fast path: surrogates only exist below U+E000 and are rare.
    if not any(_HIGH_START <= ord(ch) <= _LOW_END for ch in text):
        return text

    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        cp = ord(text[i])
        if _is_high(cp):
            if i + 1 < n and _is_low(ord(text[i + 1])):
                low = ord(text[i + 1])
                out.append(chr(0x10000 + ((cp - _HIGH_START) << 10) + (low - _LOW_START)))
                i += 2
                continue
            logger.info("Removed lone high surrogate U+%04X at index %d", cp, i)
        elif _is_low(cp):
            logger.info("Removed lone low surrogate U+%04X at index %d", cp, i)
        else:
            out.append(text[i])
        i += 1
    return "".join(out)


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize(value)
    if isinstance(value, list):
        return [_sanitize_value(v) for v in value]
    if isinstance(value, dict):
        return {sanitize(k): _sanitize_value(v) for k, v in value.items()}
    return value


def sanitize_block(block: ContentBlock) -> ContentBlock:
    """Return a sanitized copy of one content block."""
    if isinstance(block, TextBlock):
        return TextBlock(text=sanitize(block.text))
    if isinstance(block, ToolInvocation):
        return ToolInvocation(
            id=block.id,
            name=sanitize(block.name),
            arguments=_sanitize_value(block.arguments),
        )
    if isinstance(block, ToolOutcome):
        return ToolOutcome(
            invocation_id=block.invocation_id,
            text=sanitize(block.text),
            is_error=block.is_error,
        )
    return block


def sanitize_turn(turn: Turn) -> Turn:
    """Return a copy of *turn* with every text payload sanitized.

    Plain-string content is kept as a string.
    """
    if isinstance(turn.content, str):
        return Turn(role=turn.role, content=sanitize(turn.content))
    return Turn(role=turn.role, content=[sanitize_block(b) for b in turn.content])

"""Core data models for the provider-agnostic LLM layer.

Defines the canonical conversation turn, the content-block tagged union,
tool definitions and the completion request/response shapes that every
provider adapter translates to and from.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Role(str, enum.Enum):
    """Who a turn is attributable to."""

    HUMAN = "user"
    AGENT = "assistant"


class ContentKind(str, enum.Enum):
    """Discriminator for the ContentBlock tagged union."""

    TEXT = "text"
    IMAGE = "image"
    TOOL_INVOCATION = "tool_invocation"
    TOOL_OUTCOME = "tool_outcome"


class StopReason(str, enum.Enum):
    """Why the model stopped generating."""

    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Content Blocks (Tagged Union)
# ---------------------------------------------------------------------------


@dataclass
class TextBlock:
    """Plain text content."""

    kind: ContentKind = field(default=ContentKind.TEXT, init=False)
    text: str = ""


@dataclass
class ImageBlock:
    """An inline base64 image, e.g. a photo attached by the operator."""

    kind: ContentKind = field(default=ContentKind.IMAGE, init=False)
    base64_data: str = ""
    media_type: str = "image/jpeg"


@dataclass
class ToolInvocation:
    """A tool call emitted by the model.

    ``id`` is opaque and provider-issued; it is only used to pair the
    invocation with its eventual :class:`ToolOutcome`.
    """

    kind: ContentKind = field(default=ContentKind.TOOL_INVOCATION, init=False)
    id: str = ""
    name: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolOutcome:
    """The textual result of executing one ToolInvocation."""

    kind: ContentKind = field(default=ContentKind.TOOL_OUTCOME, init=False)
    invocation_id: str = ""
    text: str = ""
    is_error: bool = False


ContentBlock = TextBlock | ImageBlock | ToolInvocation | ToolOutcome


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


@dataclass
class Turn:
    """One message-equivalent unit of a conversation.

    ``content`` is either a plain string or a list of content blocks.
    Every ToolOutcome must reference a ToolInvocation id emitted in the
    immediately preceding Agent turn.
    """

    role: Role
    content: str | list[ContentBlock] = field(default_factory=list)

    @staticmethod
    def human(text: str) -> Turn:
        """Create a human turn holding a single text block."""
        return Turn(role=Role.HUMAN, content=[TextBlock(text=text)])

    @staticmethod
    def agent(text: str) -> Turn:
        """Create an agent turn holding a single text block."""
        return Turn(role=Role.AGENT, content=[TextBlock(text=text)])

    @staticmethod
    def outcomes(outcomes: list[ToolOutcome]) -> Turn:
        """Create the human-side turn that carries tool outcomes."""
        return Turn(role=Role.HUMAN, content=list(outcomes))

    def blocks(self) -> list[ContentBlock]:
        """Return the content as a block list, wrapping plain strings.

        Returns:
            A list of content blocks; an empty string yields an empty list.
        """
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)] if self.content else []
        return list(self.content)

    def text(self) -> str:
        """Concatenate the text of every TextBlock in the turn."""
        return "".join(b.text for b in self.blocks() if isinstance(b, TextBlock))

    def tool_invocations(self) -> list[ToolInvocation]:
        return [b for b in self.blocks() if isinstance(b, ToolInvocation)]

    def tool_outcomes(self) -> list[ToolOutcome]:
        return [b for b in self.blocks() if isinstance(b, ToolOutcome)]

    def is_empty(self) -> bool:
        """Check whether the turn carries nothing a provider would accept.

        Text blocks that are blank count as empty; any invocation,
        outcome or image block makes the turn non-empty.
        """
        for block in self.blocks():
            if isinstance(block, TextBlock):
                if block.text.strip():
                    return False
            else:
                return False
        return True


# ---------------------------------------------------------------------------
# Tool Definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolDefinition:
    """Declarative description of a tool that the model may invoke."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_json_schema(self) -> dict[str, Any]:
        """Return the input schema normalized for API submission."""
        return {
            "type": "object",
            "properties": self.input_schema.get("properties", {}),
            "required": self.input_schema.get("required", []),
        }


# ---------------------------------------------------------------------------
# Request / Response
# ---------------------------------------------------------------------------


@dataclass
class TokenUsage:
    """Token consumption details."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class RetryPolicy:
    """Backoff policy applied to rate-limited completion requests.

    Raises:
        ValueError: If any constraint is violated (negative retries,
            non-positive delay/multiplier, or max_delay < base_delay).
    """

    max_retries: int = 5
    base_delay_seconds: float = 2.0
    multiplier: float = 2.0
    max_delay_seconds: float = 120.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay_seconds <= 0:
            raise ValueError(
                f"base_delay_seconds must be > 0, got {self.base_delay_seconds}"
            )
        if self.multiplier <= 0:
            raise ValueError(f"multiplier must be > 0, got {self.multiplier}")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError(
                f"max_delay_seconds ({self.max_delay_seconds}) must be "
                f">= base_delay_seconds ({self.base_delay_seconds})"
            )

    def delay_for_attempt(self, attempt: int) -> float:
        """Calculate the backoff delay for a given retry attempt.

        Uses exponential backoff: ``base_delay * multiplier^attempt``,
        capped at ``max_delay_seconds``.

        Args:
            attempt: Zero-based attempt index.

        Returns:
            Delay in seconds before the next retry.
        """
        delay = self.base_delay_seconds * (self.multiplier**attempt)
        return min(delay, self.max_delay_seconds)


@dataclass
class CompletionRequest:
    """A canonical "create message" request."""

    system_text: str = ""
    tools: list[ToolDefinition] = field(default_factory=list)
    history: list[Turn] = field(default_factory=list)
    max_output_tokens: int = 4096
    model: str = ""


@dataclass
class CompletionResponse:
    """The canonical reply every provider adapter must produce.

    ``raw_fallback`` holds a JSON dump of the vendor payload when the
    assistant message could not be located or had an unexpected shape.
    """

    content_blocks: list[ContentBlock] = field(default_factory=list)
    stop_reason: StopReason = StopReason.END_TURN
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    raw_fallback: str = ""

    def text(self) -> str:
        return "".join(
            b.text for b in self.content_blocks if isinstance(b, TextBlock)
        )

    def tool_invocations(self) -> list[ToolInvocation]:
        return [b for b in self.content_blocks if isinstance(b, ToolInvocation)]

    def as_turn(self) -> Turn:
        """Wrap the response content as an Agent turn."""
        return Turn(role=Role.AGENT, content=list(self.content_blocks))

"""Output limits for tool results fed back to the model.

Each tool gets one :class:`OutputLimit`. ``run_command`` is the exception:
its stdout and stderr are limited separately, inside the tool, by
:func:`format_command_output`, and the dispatcher leaves its result alone.
Every cut carries a ``[WARNING: Tool output was truncated ...]`` marker.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field


class Keep(str, enum.Enum):
    """Which part of an oversized output survives."""

    HEAD = "head"
    TAIL = "tail"
    BOTH = "both"


@dataclass(frozen=True)
class OutputLimit:
    """Character and line ceiling for one output. ``0`` disables a ceiling."""

    max_chars: int
    keep: Keep = Keep.BOTH
    max_lines: int = 0


UNLIMITED = OutputLimit(max_chars=0)


@dataclass
class TruncationConfig:
    """Output limits per tool, plus the per-stream limits of ``run_command``."""

    tool_limits: dict[str, OutputLimit] = field(
        default_factory=lambda: {
            "read_file": OutputLimit(50_000),
            "list_files": OutputLimit(20_000, Keep.HEAD, max_lines=500),
            "search_memory": OutputLimit(10_000, Keep.HEAD),
            "fetch_url": OutputLimit(20_000),
            "git_commit_push": OutputLimit(5_000, Keep.TAIL),
            # Streams are limited inside the tool.
            "run_command": UNLIMITED,
        }
    )
    default_limit: OutputLimit = field(default_factory=lambda: OutputLimit(20_000))
    stdout_limit: OutputLimit = field(
        default_factory=lambda: OutputLimit(10_000, max_lines=400)
    )
    stderr_limit: OutputLimit = field(
        default_factory=lambda: OutputLimit(4_000, Keep.TAIL)
    )

    def limit_for(self, tool_name: str) -> OutputLimit:
        return self.tool_limits.get(tool_name, self.default_limit)


def _marker(omitted: int, unit: str, where: str) -> str:
    return (
        f"[WARNING: Tool output was truncated. {omitted} {unit} omitted from the "
        f"{where}. Narrow the request to see them.]"
    )


def _cut(items: Sequence[str], limit: int, keep: Keep, unit: str, sep: str) -> str:
    """Keep *limit* items of *items* according to *keep* and join with *sep*."""
    omitted = len(items) - limit
    if keep == Keep.HEAD:
        return sep.join(items[:limit]) + f"\n\n{_marker(omitted, unit, 'end')}"
    if keep == Keep.TAIL:
        return f"{_marker(omitted, unit, 'start')}\n\n" + sep.join(items[-limit:])
    head = limit - limit // 2
    tail = limit // 2
    return (
        sep.join(items[:head])
        + f"\n\n{_marker(omitted, unit, 'middle')}\n\n"
        + sep.join(items[len(items) - tail :])
    )


def apply_limit(text: str, limit: OutputLimit) -> str:
    """Return *text* cut down to *limit*, lines first, then characters."""
    if limit.max_lines > 0:
        lines = text.split("\n")
        if len(lines) > limit.max_lines:
            text = _cut(lines, limit.max_lines, limit.keep, "lines", "\n")
    if limit.max_chars > 0 and len(text) > limit.max_chars:
        text = _cut(text, limit.max_chars, limit.keep, "characters", "")
    return text


def truncate_output(
    tool_name: str,
    output: str,
    config: TruncationConfig | None = None,
) -> str:
    """Apply the limit configured for *tool_name* to its output."""
    cfg = config or TruncationConfig()
    return apply_limit(output, cfg.limit_for(tool_name))


def format_command_output(
    stdout: str,
    stderr: str,
    config: TruncationConfig | None = None,
) -> str:
    """Combine the two streams of a command, each within its own limit."""
    cfg = config or TruncationConfig()
    output = apply_limit(stdout, cfg.stdout_limit)
    if stderr:
        output += ("\n\nSTDERR:\n" if output else "STDERR:\n") + apply_limit(
            stderr, cfg.stderr_limit
        )
    return output

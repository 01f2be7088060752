"""Detection of answers that claim actions no tool actually performed.

Models sometimes reply "I have created notes.md" without ever calling
``write_file``. :class:`HallucinationGuard` flags such answers so the
orchestrator can push the model back into the tool-use loop.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_VERBS = (
    r"created|written|wrote|modified|updated|edited|deleted|removed|committed|pushed|"
    r"saved|renamed|installed|deployed|fixed|changed|added"
)

DEFAULT_PATTERNS: tuple[str, ...] = (
    r"\b(file|files|directory|folder|commit|changes?)\s+(has|have)\s+(been\s+)?(" + _VERBS + r")\b",
    r"\bI(\s+have|'ve)\s+(now\s+|successfully\s+|just\s+|also\s+)*(" + _VERBS + r")\b",
    r"\bsuccessfully\s+(" + _VERBS + r"|create|write|commit|push)\b",
    r"^\s*(Written|Created|Saved|Committed):",
    r"\b(committed|pushed)\s+(it\s+|the\s+changes\s+)?to\s+(the\s+)?(main|master|origin|remote|repo)",
    r"已建立|已創建|已新增|已寫入|已寫了|已修改|已更新|已刪除|已移除",
    r"檔案已|文件已",
    r"已\s*commit|已\s*push|已\s*tag|已\s*release",
    r"剛讀檔確認|剛讀取確認|讀檔確認",
)

CORRECTIVE_INSTRUCTION = (
    "[SYSTEM] Your previous answer claims that actions were performed (files "
    "written, changes committed, ...) but you did not call any tools in this "
    "turn, so nothing actually happened.\n\n"
    "Rules:\n"
    "1. To create or change files you MUST call write_file.\n"
    "2. To read files you MUST call read_file.\n"
    "3. To run commands you MUST call run_command.\n"
    "4. Never describe an action as done unless a tool result confirms it.\n\n"
    "Redo the requested work now using the tools, then report what the tool "
    "results show."
)


@dataclass(frozen=True)
class HallucinationVerdict:
    """Result of one :meth:`HallucinationGuard.check`."""

    triggered: bool
    matched_pattern: str | None = None


class HallucinationGuard:
    """Flags final answers that claim completed actions without tool calls.

    Args:
        patterns: Regular expressions describing claims of completed
            action. Matched case-insensitively and per line.
    """

    corrective_instruction = CORRECTIVE_INSTRUCTION

    def __init__(self, patterns: Iterable[str] = DEFAULT_PATTERNS) -> None:
        self._patterns = [
            re.compile(p, re.IGNORECASE | re.MULTILINE) for p in patterns
        ]

    def check(self, final_text: str, tool_invocation_count: int) -> HallucinationVerdict:
        """Classify *final_text* given how many tools ran this turn."""
        if tool_invocation_count > 0 or not final_text:
            return HallucinationVerdict(triggered=False)
        for pattern in self._patterns:
            if pattern.search(final_text):
                logger.warning(
                    "Hallucinated action claim (pattern %r): %.200s",
                    pattern.pattern,
                    final_text,
                )
                return HallucinationVerdict(triggered=True, matched_pattern=pattern.pattern)
        return HallucinationVerdict(triggered=False)

"""Masking of credentials in text leaving the process."""

from __future__ import annotations

import re

SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"sk-ant-[a-zA-Z0-9_-]{20,}"),  # Anthropic
    re.compile(r"xai-[a-zA-Z0-9_-]{20,}"),  # xAI
    re.compile(r"sk-(?:proj-)?[a-zA-Z0-9_-]{32,}"),  # OpenAI
    re.compile(r"\b[0-9]+:[A-Za-z0-9_-]{30,}\b"),  # Telegram bot tokens
    re.compile(r"ghp_[A-Za-z0-9_]{36,}"),  # GitHub PAT (classic)
    re.compile(r"github_pat_[A-Za-z0-9_]{20,}"),  # GitHub PAT (fine-grained)
    re.compile(r"ghs_[A-Za-z0-9_]{36,}"),  # GitHub App installation token
    re.compile(r"x-access-token:[^\s@]+"),  # token embedded in git remote URLs
    re.compile(r"0x[a-fA-F0-9]{64}"),  # hex private keys
    re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b"),  # AWS access keys
)


def _mask(match: re.Match[str]) -> str:
    value = match.group(0)
    if len(value) <= 8:
        return "********"
    return value[:4] + "****" + value[-4:]


def redact_secrets(text: str | None) -> str:
    """Mask anything that looks like an API key or token.

    Keeps the first and last four characters so operators can still tell
    which credential leaked.
    """
    if not text:
        return text or ""
    masked = str(text)
    for pattern in SECRET_PATTERNS:
        masked = pattern.sub(_mask, masked)
    return masked

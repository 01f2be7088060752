"""System prompt construction and project documentation discovery.

Layers, later ones refining earlier ones:
1. Base agent instructions
2. Environment context (date, working directory, git state)
3. Capability summaries
4. Project docs (AGENTS.md, DEVAGENT.md), 32 KB budget
5. Operator instruction overrides
"""

from __future__ import annotations

import datetime
import logging
import subprocess
from pathlib import Path

from devagent.agent.capabilities import CapabilityRegistry

logger = logging.getLogger(__name__)

# Max bytes of project documentation to include in the system prompt.
_PROJECT_DOC_BUDGET = 32 * 1024

_DOC_FILENAMES = ("AGENTS.md", "DEVAGENT.md")

BASE_INSTRUCTIONS = """\
You are an autonomous developer agent working on a software project on behalf \
of a human operator who talks to you through a chat channel.

- Use the tools to inspect and change the project. Paths are relative to the \
project root.
- Never claim that you created, changed, committed or deleted anything unless a \
tool result in this conversation confirms it.
- Scratch and temporary files belong in the {transient_dir}/ directory.
- When you are done, answer with a short summary of what the tool results show."""


def _git(working_dir: str, *args: str) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=working_dir,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def discover_project_docs(working_dir: str) -> str:
    """Load agent-facing project docs from the working dir up to the git root.

    Closest files come first. Respects a 32 KB total budget.
    """
    root = Path(_git(working_dir, "rev-parse", "--show-toplevel") or working_dir).resolve()
    current = Path(working_dir).resolve()
    search_dirs = [current]
    while current != root and current.parent != current:
        current = current.parent
        search_dirs.append(current)

    collected: list[str] = []
    total_bytes = 0
    for directory in search_dirs:
        for fname in _DOC_FILENAMES:
            fpath = directory / fname
            if not fpath.is_file():
                continue
            try:
                content = fpath.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.debug("Skipping %s: %s", fpath, exc)
                continue
            size = len(content.encode())
            if total_bytes + size > _PROJECT_DOC_BUDGET:
                remaining = _PROJECT_DOC_BUDGET - total_bytes
                if remaining > 0:
                    collected.append(
                        f"# {fname} (from {directory}, truncated)\n{content[:remaining]}"
                    )
                return "\n\n".join(collected)
            collected.append(f"# {fname} (from {directory})\n{content}")
            total_bytes += size
    return "\n\n".join(collected)


def build_system_prompt(
    working_dir: str,
    model_id: str = "",
    capabilities: CapabilityRegistry | None = None,
    user_instructions: str = "",
    transient_dir: str = "tmp",
) -> str:
    """Construct the full system prompt for one turn."""
    sections = [BASE_INSTRUCTIONS.format(transient_dir=transient_dir)]

    branch = _git(working_dir, "rev-parse", "--abbrev-ref", "HEAD")
    status = _git(working_dir, "status", "--short")
    env_lines = [
        "<environment>",
        f"Date: {datetime.date.today().isoformat()}",
        f"Working directory: {working_dir}",
        f"Git branch: {branch or '(not a git repo)'}",
        f"Git status: {(status or 'clean') if branch else '(not a git repo)'}",
    ]
    if model_id:
        env_lines.append(f"Model: {model_id}")
    env_lines.append("</environment>")
    sections.append("\n".join(env_lines))

    if capabilities is not None:
        hints = capabilities.hints()
        if hints:
            sections.append(hints)

    docs = discover_project_docs(working_dir)
    if docs:
        sections.append(docs)
    if user_instructions:
        sections.append(f"Operator instructions:\n{user_instructions}")
    return "\n\n".join(sections)

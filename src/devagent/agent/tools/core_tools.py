"""Reference implementations of the always-available core tools.

Each handler takes the (already validated and policy-normalized)
``arguments`` dict and the :class:`ToolContext`, and returns a string.
Failures are returned as ``"Error..."`` strings; anything that escapes is
caught by the dispatcher.
"""

from __future__ import annotations

import datetime as _dt
from typing import Any

from devagent.agent.tools.registry import Tool, ToolContext
from devagent.agent.truncation import apply_limit, format_command_output
from devagent.llm.models import ToolDefinition


# ---------------------------------------------------------------------------
# read_file
# ---------------------------------------------------------------------------


async def read_file(arguments: dict[str, Any], ctx: ToolContext) -> str:
    path: str = arguments["path"]
    env = ctx.environment
    if not await env.file_exists(path):
        return f"Error: File not found: {path}"
    try:
        return await env.read_file(path)
    except IsADirectoryError:
        return f"Error: {path} is a directory. Use list_files instead."
    except OSError as exc:
        return f"Error reading {path}: {exc}"


READ_FILE_DEF = ToolDefinition(
    name="read_file",
    description="Read a file from the project. Paths are relative to the project root.",
    input_schema={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": 'File path relative to project root (e.g. "src/App.jsx").',
            },
        },
        "required": ["path"],
    },
)


# ---------------------------------------------------------------------------
# write_file
# ---------------------------------------------------------------------------


async def write_file(arguments: dict[str, Any], ctx: ToolContext) -> str:
    path: str = arguments["path"]
    content: str = arguments["content"]
    try:
        size = await ctx.environment.write_file(path, content)
    except OSError as exc:
        return f"Error writing {path}: {exc}"
    return f"Written: {path} ({size} bytes)"


WRITE_FILE_DEF = ToolDefinition(
    name="write_file",
    description=(
        "Create or overwrite a file with the given content. "
        "Parent directories are created as needed."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path relative to project root."},
            "content": {"type": "string", "description": "The full file content."},
        },
        "required": ["path", "content"],
    },
)


# ---------------------------------------------------------------------------
# list_files
# ---------------------------------------------------------------------------


async def list_files(arguments: dict[str, Any], ctx: ToolContext) -> str:
    path: str = arguments.get("path", ".")
    recursive: bool = arguments.get("recursive", False)
    env = ctx.environment
    if not await env.file_exists(path):
        return f"Error: Directory not found: {path}"
    entries = await env.list_directory(path, recursive=recursive)
    if not entries:
        return f"{path} is empty."
    lines = [f"{e.path}/" if e.is_dir else f"{e.path} ({e.size} bytes)" for e in entries]
    return "\n".join(lines)


LIST_FILES_DEF = ToolDefinition(
    name="list_files",
    description="List files in a project directory.",
    input_schema={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory relative to project root. Default: root.",
            },
            "recursive": {"type": "boolean", "description": "Descend into subdirectories."},
        },
    },
)


# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


async def run_command(arguments: dict[str, Any], ctx: ToolContext) -> str:
    command: str = arguments["command"]
    timeout = float(arguments.get("timeout_seconds") or ctx.default_command_timeout_s)
    timeout = min(timeout, ctx.max_command_timeout_s)

    result = await ctx.environment.exec_command(command, timeout_s=timeout)
    if result.timed_out:
        partial = apply_limit(result.stdout, ctx.truncation.stdout_limit)
        return f"Error: Command timed out after {timeout:.0f}s: {command}\n{partial}".rstrip()

    output = format_command_output(result.stdout, result.stderr, ctx.truncation)
    if result.exit_code != 0:
        return f"Error (exit {result.exit_code}): {output or '(no output)'}"
    return output or "(command completed with no output)"


RUN_COMMAND_DEF = ToolDefinition(
    name="run_command",
    description=(
        "Run a shell command in the project directory (npm, git status, tests, ...). "
        "Destructive commands are blocked."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The shell command to run."},
            "timeout_seconds": {
                "type": "number",
                "description": "Timeout in seconds. Default 120.",
                "minimum": 1,
            },
        },
        "required": ["command"],
    },
)


# ---------------------------------------------------------------------------
# git_commit_push
# ---------------------------------------------------------------------------


async def git_commit_push(arguments: dict[str, Any], ctx: ToolContext) -> str:
    message: str = arguments["message"]
    push: bool = arguments.get("push", True)
    env = ctx.environment

    added = await env.exec_argv(["git", "add", "-A"], timeout_s=60)
    if added.exit_code != 0:
        return f"Error (git add): {added.stderr.strip() or added.stdout.strip()}"

    # exit 0 means nothing is staged
    staged = await env.exec_argv(["git", "diff", "--cached", "--quiet"], timeout_s=60)
    if staged.exit_code == 0:
        return "No changes to commit."

    # argv, not a shell string, so the model's message is never interpreted.
    committed = await env.exec_argv(["git", "commit", "-m", message], timeout_s=60)
    if committed.exit_code != 0:
        return f"Error (git commit): {committed.stderr.strip() or committed.stdout.strip()}"
    if not push:
        return f'Committed: "{message}"'

    pushed = await env.exec_argv(["git", "push", "--force-with-lease"], timeout_s=60)
    if pushed.timed_out:
        return f'Error: Committed "{message}" but git push timed out.'
    if pushed.exit_code != 0:
        return f'Error: Committed "{message}" but push failed: {pushed.stderr.strip()}'
    return f'Committed and pushed: "{message}"'


GIT_COMMIT_PUSH_DEF = ToolDefinition(
    name="git_commit_push",
    description="Stage all changes, commit them with a message and push to the remote.",
    input_schema={
        "type": "object",
        "properties": {
            "message": {"type": "string", "description": "Commit message.", "minLength": 1},
            "push": {"type": "boolean", "description": "Push after committing. Default true."},
        },
        "required": ["message"],
    },
)


# ---------------------------------------------------------------------------
# send_message
# ---------------------------------------------------------------------------


async def send_message(arguments: dict[str, Any], ctx: ToolContext) -> str:
    if ctx.messenger is None:
        return "Error: No messaging transport is configured."
    await ctx.messenger.send_message(arguments["message"])
    return "Message sent."


SEND_MESSAGE_DEF = ToolDefinition(
    name="send_message",
    description="Send a progress message to the operator right away.",
    input_schema={
        "type": "object",
        "properties": {
            "message": {"type": "string", "description": "The text to send."},
        },
        "required": ["message"],
    },
)


# ---------------------------------------------------------------------------
# remember / search_memory
# ---------------------------------------------------------------------------


async def remember(arguments: dict[str, Any], ctx: ToolContext) -> str:
    note: str = arguments["note"].strip()
    topic: str = arguments.get("topic", "journal")
    path = f"{ctx.memory_dir}/{topic}.md"
    env = ctx.environment

    existing = await env.read_file(path) if await env.file_exists(path) else ""
    stamp = _dt.datetime.now().strftime("%Y-%m-%d %H:%M")
    entry = f"## {stamp}\n{note}\n"
    content = f"{existing.rstrip()}\n\n{entry}" if existing.strip() else entry
    await env.write_file(path, content)
    return f"Saved to {path}."


REMEMBER_DEF = ToolDefinition(
    name="remember",
    description="Append a note to long-term memory so it survives restarts.",
    input_schema={
        "type": "object",
        "properties": {
            "note": {"type": "string", "description": "What to remember.", "minLength": 1},
            "topic": {
                "type": "string",
                "description": "Memory file name (letters, digits, - and _). Default: journal.",
                "pattern": "^[A-Za-z0-9_-]+$",
            },
        },
        "required": ["note"],
    },
)


async def search_memory(arguments: dict[str, Any], ctx: ToolContext) -> str:
    query: str = arguments["query"].lower()
    env = ctx.environment
    if not await env.file_exists(ctx.memory_dir):
        return "Memory is empty."

    hits: list[str] = []
    for entry in await env.list_directory(ctx.memory_dir, recursive=True):
        if entry.is_dir or not entry.name.endswith((".md", ".txt")):
            continue
        text = await env.read_file(entry.path)
        for lineno, line in enumerate(text.splitlines(), 1):
            if query in line.lower():
                hits.append(f"{entry.path}:{lineno}: {line}")
    if not hits:
        return f"No memories matching '{arguments['query']}'."
    return "\n".join(hits)


SEARCH_MEMORY_DEF = ToolDefinition(
    name="search_memory",
    description="Search long-term memory notes for a case-insensitive phrase.",
    input_schema={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Phrase to look for.", "minLength": 1},
        },
        "required": ["query"],
    },
)


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

READ_FILE = Tool(READ_FILE_DEF, read_file, path_args=("path",))
WRITE_FILE = Tool(WRITE_FILE_DEF, write_file, path_args=("path",))
LIST_FILES = Tool(LIST_FILES_DEF, list_files, path_args=("path",))
RUN_COMMAND = Tool(RUN_COMMAND_DEF, run_command, command_args=("command",))
GIT_COMMIT_PUSH = Tool(GIT_COMMIT_PUSH_DEF, git_commit_push)
SEND_MESSAGE = Tool(SEND_MESSAGE_DEF, send_message)
REMEMBER = Tool(REMEMBER_DEF, remember)
SEARCH_MEMORY = Tool(SEARCH_MEMORY_DEF, search_memory)

CORE_TOOLS: tuple[Tool, ...] = (
    READ_FILE,
    WRITE_FILE,
    LIST_FILES,
    RUN_COMMAND,
    GIT_COMMIT_PUSH,
    SEND_MESSAGE,
    REMEMBER,
    SEARCH_MEMORY,
)

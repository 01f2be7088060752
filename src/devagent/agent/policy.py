"""Safety policy applied before any tool touches the filesystem or a shell.

Three independent pieces live here:

* :class:`PathPolicy` turns whatever path the model wrote into a clean
  path relative to the project directory, or refuses it.
* :class:`CommandPolicy` rejects destructive shell commands and rewrites
  near-miss ones into narrowly-scoped equivalents.
* :func:`filter_env` strips secret-bearing variables from the environment
  handed to subprocesses.

Both policies raise :class:`PolicyViolation`; the dispatcher turns it into
an error string that is worded differently from execution failures.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import shlex
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


class PolicyViolation(Exception):
    """A tool call was refused before execution."""

    def __init__(self, policy: str, reason: str) -> None:
        super().__init__(f"{policy} policy: {reason}")
        self.policy = policy
        self.reason = reason


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

DEFAULT_TRANSIENT_PATTERNS: tuple[str, ...] = ("*.tmp", "*.log", "tmp_*", "scratch_*")


class PathPolicy:
    """Normalizes model-supplied paths into the project directory.

    Args:
        workdir: The project root every path must stay inside.
        transient_dir: Directory (relative to *workdir*) receiving files
            whose names match *transient_patterns*.
        root_aliases: Extra absolute prefixes the model tends to use for
            the project root, stripped like the real one.
        transient_patterns: fnmatch patterns for scratch file names.
    """

    def __init__(
        self,
        workdir: str | os.PathLike[str],
        transient_dir: str = "tmp",
        root_aliases: Iterable[str] = (),
        transient_patterns: Iterable[str] = DEFAULT_TRANSIENT_PATTERNS,
    ) -> None:
        self.workdir = Path(workdir).resolve()
        self.transient_dir = PurePosixPath(transient_dir.strip("/") or "tmp")
        prefixes = {str(self.workdir), *(a.rstrip("/") for a in root_aliases if a)}
        # Longest first so nested aliases are stripped completely.
        self._prefixes = sorted(prefixes, key=len, reverse=True)
        self._transient_patterns = tuple(transient_patterns)

    def normalize(self, raw_path: str) -> str:
        """Return *raw_path* as a clean POSIX path relative to the workdir.

        Raises:
            PolicyViolation: If the path escapes the project directory.
        """
        path = (raw_path or "").strip().replace("\\", "/")
        for prefix in self._prefixes:
            if path == prefix:
                path = "."
                break
            if path.startswith(prefix + "/"):
                path = path[len(prefix) + 1 :]
                break
        if path.startswith("~") or PurePosixPath(path).is_absolute():
            raise PolicyViolation("path", f"'{raw_path}' is outside the project directory")

        parts = [p for p in PurePosixPath(path).parts if p not in ("", ".")]
        if len(parts) > 1 and parts[0] == self.workdir.name:
            parts = parts[1:]
        collapsed: list[str] = []
        for part in parts:
            if collapsed and collapsed[-1] == part and part != "..":
                continue
            collapsed.append(part)

        rel = PurePosixPath(*collapsed) if collapsed else PurePosixPath(".")
        if collapsed and self._is_transient(collapsed[-1]) and not self._in_transient(rel):
            redirected = self.transient_dir / collapsed[-1]
            logger.info("Redirecting transient file %s -> %s", rel, redirected)
            rel = redirected

        resolved = (self.workdir / rel).resolve()
        if resolved != self.workdir and self.workdir not in resolved.parents:
            raise PolicyViolation("path", f"'{raw_path}' escapes the project directory")
        if str(rel) != raw_path:
            logger.debug("Normalized path %r -> %r", raw_path, str(rel))
        return str(rel)

    def resolve(self, raw_path: str) -> Path:
        """Normalize *raw_path* and return the absolute path."""
        return self.workdir / self.normalize(raw_path)

    def _is_transient(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pat) for pat in self._transient_patterns)

    def _in_transient(self, rel: PurePosixPath) -> bool:
        return rel.parts[: len(self.transient_dir.parts)] == self.transient_dir.parts


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

_DENY_RULES: tuple[tuple[str, str], ...] = (
    (r"\bmkfs(\.\w+)?\b", "disk formatting"),
    (r"\bdd\s+if=", "raw disk copy"),
    (r"\b(shutdown|reboot|poweroff)\b", "machine shutdown"),
    (r":\(\)\s*\{", "fork bomb"),
    (r"\b(curl|wget)\b[^|]*\|\s*(sudo\s+)?(ba|z|da)?sh\b", "piping a download into a shell"),
    (r"\bkill\s+-9\s+(\$\$|\$PPID)", "killing the agent's own process"),
    (r"\bkill(\s+[^\s;&|]+)*?\s+-1(?=\s*($|[;&|)]))", "killing every process of this user"),
    (r">\s*/dev/[sh]d[a-z]", "writing to a raw disk device"),
)

# Operands that make a recursive rm wipe the root or home directory.
_RM_TARGET_RE = re.compile(r"(/|~|\$HOME|\$\{HOME\})/?\*?")
_SHELL_SEPARATORS = {";", "&", "&&", "|", "||", "(", ")", "\n"}

_KILLALL_RE = re.compile(r"\bkillall\s+(?:-\d+\s+|-[A-Z]+\s+)?([\w.-]+)")
_PKILL_F_RE = re.compile(r"\bpkill\s+-f\s+(?:(['\"])(.+?)\1|([\w.-]+))")


def _shell_words(command: str) -> list[str]:
    """Split *command* like a POSIX shell, keeping ``;``/``&&``/``|`` as words."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    try:
        return list(lexer)
    except ValueError:
        # Unbalanced quotes: the shell rejects it too, so a plain split is
        # only used to look for dangerous words.
        return command.split()


def _is_root_rm(command: str) -> bool:
    """True if *command* runs a recursive ``rm`` on ``/``, ``~`` or ``$HOME``."""
    words = _shell_words(command)
    for i, word in enumerate(words):
        if word.rsplit("/", 1)[-1] != "rm":
            continue
        recursive = False
        targets: list[str] = []
        options_done = False
        for arg in words[i + 1 :]:
            if arg in _SHELL_SEPARATORS:
                break
            if not options_done and arg == "--":
                options_done = True
            elif not options_done and arg.startswith("--"):
                recursive = recursive or arg == "--recursive"
            elif not options_done and arg.startswith("-") and len(arg) > 1:
                recursive = recursive or "r" in arg[1:] or "R" in arg[1:]
            else:
                targets.append(arg)
        if recursive and any(_RM_TARGET_RE.fullmatch(t) for t in targets):
            return True
    return False


def _rewrite_pkill_f(match: re.Match[str]) -> str:
    pattern = match.group(2) if match.group(1) else match.group(3)
    if any(ch.isspace() for ch in pattern):
        # A multi-word pattern only makes sense as a full command-line match.
        return f'pkill -f -u "$(id -u)" {shlex.quote(pattern)}'
    return f'pkill -x -u "$(id -u)" {pattern}'


@dataclass
class CommandPolicy:
    """Deny-list plus rewrite rules for shell commands.

    Attributes:
        protected_processes: Names no ``pkill``/``killall`` may target,
            since they would take down the agent's own runtime. A ``kill``
            fed by ``pgrep``/``pidof`` of one of them is refused too.
    """

    protected_processes: list[str] = field(
        default_factory=lambda: ["node", "python", "python3", "devagent"]
    )

    def __post_init__(self) -> None:
        self._deny = [(re.compile(p, re.IGNORECASE), why) for p, why in _DENY_RULES]
        names = "|".join(re.escape(n) for n in self.protected_processes if n)
        self._protected = (
            re.compile(rf"\b(pkill|killall)\b[^;&|]*\b({names})\b", re.IGNORECASE)
            if names
            else None
        )
        self._lookup = (
            re.compile(rf"\b(pgrep|pidof)\b[^;&|)`]*\b({names})\b", re.IGNORECASE)
            if names
            else None
        )

    def check(self, command: str) -> str:
        """Validate *command* and return the (possibly rewritten) command.

        Raises:
            PolicyViolation: If the command matches the deny-list.
        """
        if _is_root_rm(command):
            self._refuse("recursive deletion of / or home", command)
        for pattern, why in self._deny:
            if pattern.search(command):
                self._refuse(why, command)
        for regex in (self._protected, self._lookup):
            if regex is None:
                continue
            m = regex.search(command)
            if m and (regex is self._protected or re.search(r"\bkill\b", command)):
                logger.warning("Blocked command (protected process): %s", command)
                raise PolicyViolation(
                    "command",
                    f"killing '{m.group(2)}' would terminate the agent runtime: {command}",
                )
        return self.rewrite(command)

    @staticmethod
    def _refuse(why: str, command: str) -> None:
        logger.warning("Blocked command (%s): %s", why, command)
        raise PolicyViolation("command", f"{why} is not allowed: {command}")

    def rewrite(self, command: str) -> str:
        """Scope broad process kills to exact names owned by this user."""
        rewritten = _KILLALL_RE.sub(r'pkill -x -u "$(id -u)" \1', command)
        rewritten = _PKILL_F_RE.sub(_rewrite_pkill_f, rewritten)
        if rewritten != command:
            logger.info("Rewrote command %r -> %r", command, rewritten)
        return rewritten


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

SECRET_ENV_NAMES: frozenset[str] = frozenset(
    {
        "ANTHROPIC_API_KEY",
        "XAI_API_KEY",
        "OPENAI_API_KEY",
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "TELEGRAM_BOT_TOKEN",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SESSION_TOKEN",
    }
)

_FILTERED_ENV_PATTERNS: list[str] = [
    "*_API_KEY",
    "*_SECRET",
    "*_SECRET_KEY",
    "*_TOKEN",
    "*_PASSWORD",
    "*_CLAIM_CODE",
]


def filter_env(
    extra: Mapping[str, str] | None = None,
    source: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return a copy of the environment with secret-bearing vars removed.

    *source* defaults to ``os.environ``, read fresh on every call so that
    secrets are never cached between tool executions. *extra* is merged
    in afterwards and is filtered the same way.
    """
    merged = dict(os.environ if source is None else source)
    if extra:
        merged.update(extra)
    filtered: dict[str, str] = {}
    for key, value in merged.items():
        upper_key = key.upper()
        if upper_key in SECRET_ENV_NAMES:
            continue
        if any(fnmatch.fnmatch(upper_key, pat) for pat in _FILTERED_ENV_PATTERNS):
            continue
        filtered[key] = value
    return filtered

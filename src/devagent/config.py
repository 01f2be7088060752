"""Agent configuration loaded from the environment and ``.env`` files."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from devagent.llm.errors import ConfigurationError
from devagent.llm.models import RetryPolicy

_DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5",
    "xai": "grok-4-1-fast-reasoning",
    "openai": "gpt-4.1",
}


@dataclass
class AgentConfig:
    """Configuration for one agent process.

    Attributes:
        provider: LLM vendor, one of ``anthropic``, ``xai``, ``openai``.
        model: Model identifier. Empty picks the provider default.
        base_url: Override for OpenAI-compatible endpoints.
        max_output_tokens: Token budget per completion.
        max_iterations: LLM round trips allowed per human turn, shared by
            the tool-use loop and any corrective loops.
        max_history_turns: Sliding-window cap on retained history turns.
        max_hallucination_retries: Corrective re-prompts per human turn.
        workdir: Project directory the tools operate in.
        transient_dir: Where scratch/temp files are redirected, relative
            to ``workdir``.
        memory_dir: Where ``remember`` stores notes, relative to ``workdir``.
        project_root_aliases: Extra absolute prefixes stripped from paths
            (e.g. the deployment path the model remembers).
        protected_processes: Process names no command may kill.
        default_command_timeout_s: Default ``run_command`` timeout.
        max_command_timeout_s: Ceiling for model-requested timeouts.
        dev_server_url: Page ``take_screenshot`` captures by default.
        retry_policy: Backoff policy for rate-limited completions.
        telegram_bot_token: Bot API token for the Telegram transport.
        telegram_chat_id: The only chat the bot answers.
    """

    provider: str = "anthropic"
    model: str = ""
    base_url: str | None = None
    max_output_tokens: int = 8192
    max_iterations: int = 30
    max_history_turns: int = 80
    max_hallucination_retries: int = 1
    workdir: Path = field(default_factory=Path.cwd)
    transient_dir: str = "tmp"
    memory_dir: str = "memory"
    project_root_aliases: list[str] = field(default_factory=list)
    protected_processes: list[str] = field(
        default_factory=lambda: ["node", "python", "python3", "devagent"]
    )
    default_command_timeout_s: float = 120.0
    max_command_timeout_s: float = 600.0
    dev_server_url: str = "http://localhost:5173"
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    anthropic_api_key: str = ""
    xai_api_key: str = ""
    openai_api_key: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    def __post_init__(self) -> None:
        if not self.model:
            self.model = _DEFAULT_MODELS.get(self.provider, "")
        self.workdir = Path(self.workdir).resolve()
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be >= 1")
        if self.max_history_turns < 2:
            raise ConfigurationError("max_history_turns must be >= 2")
        if self.max_hallucination_retries < 0:
            raise ConfigurationError("max_hallucination_retries must be >= 0")

    @classmethod
    def from_env(
        cls,
        env_file: str | os.PathLike[str] | None = ".env",
        environ: Mapping[str, str] | None = None,
        **overrides: object,
    ) -> AgentConfig:
        """Create a config from ``DEVAGENT_*`` variables.

        Loads *env_file* with python-dotenv first (existing variables win),
        then reads from *environ* (defaults to ``os.environ``). Keyword
        overrides take precedence over everything, ``None`` values excepted.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed.
        """
        if env_file is not None and environ is None:
            load_dotenv(env_file)
        env = os.environ if environ is None else environ

        kwargs: dict[str, object] = {}
        _str(env, "DEVAGENT_PROVIDER", "provider", kwargs)
        _str(env, "DEVAGENT_MODEL", "model", kwargs)
        _str(env, "DEVAGENT_BASE_URL", "base_url", kwargs)
        _int(env, "DEVAGENT_MAX_OUTPUT_TOKENS", "max_output_tokens", kwargs)
        _int(env, "DEVAGENT_MAX_ITERATIONS", "max_iterations", kwargs)
        _int(env, "DEVAGENT_MAX_HISTORY_TURNS", "max_history_turns", kwargs)
        _int(env, "DEVAGENT_HALLUCINATION_RETRIES", "max_hallucination_retries", kwargs)
        _str(env, "DEVAGENT_TRANSIENT_DIR", "transient_dir", kwargs)
        _str(env, "DEVAGENT_MEMORY_DIR", "memory_dir", kwargs)
        _str(env, "DEVAGENT_DEV_SERVER_URL", "dev_server_url", kwargs)
        _float(env, "DEVAGENT_COMMAND_TIMEOUT", "default_command_timeout_s", kwargs)
        _float(env, "DEVAGENT_MAX_COMMAND_TIMEOUT", "max_command_timeout_s", kwargs)
        if env.get("DEVAGENT_WORKDIR"):
            kwargs["workdir"] = Path(env["DEVAGENT_WORKDIR"])
        if env.get("DEVAGENT_ROOT_ALIASES"):
            kwargs["project_root_aliases"] = _split(env["DEVAGENT_ROOT_ALIASES"])
        if env.get("DEVAGENT_PROTECTED_PROCESSES"):
            kwargs["protected_processes"] = _split(env["DEVAGENT_PROTECTED_PROCESSES"])

        retry: dict[str, object] = {}
        _int(env, "DEVAGENT_RETRY_MAX", "max_retries", retry)
        _float(env, "DEVAGENT_RETRY_BASE_DELAY", "base_delay_seconds", retry)
        if retry:
            try:
                kwargs["retry_policy"] = RetryPolicy(**retry)  # type: ignore[arg-type]
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc

        kwargs["anthropic_api_key"] = env.get("ANTHROPIC_API_KEY", "")
        kwargs["xai_api_key"] = env.get("XAI_API_KEY", "")
        kwargs["openai_api_key"] = env.get("OPENAI_API_KEY", "")
        kwargs["telegram_bot_token"] = env.get("TELEGRAM_BOT_TOKEN", "")
        kwargs["telegram_chat_id"] = env.get("TELEGRAM_CHAT_ID", "")

        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)  # type: ignore[arg-type]


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _str(env: Mapping[str, str], var: str, key: str, out: dict[str, object]) -> None:
    if env.get(var):
        out[key] = env[var]


def _int(env: Mapping[str, str], var: str, key: str, out: dict[str, object]) -> None:
    if env.get(var):
        try:
            out[key] = int(env[var])
        except ValueError as exc:
            raise ConfigurationError(f"{var} must be an integer, got {env[var]!r}") from exc


def _float(env: Mapping[str, str], var: str, key: str, out: dict[str, object]) -> None:
    if env.get(var):
        try:
            out[key] = float(env[var])
        except ValueError as exc:
            raise ConfigurationError(f"{var} must be a number, got {env[var]!r}") from exc

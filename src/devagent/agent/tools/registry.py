"""Tool table: name-keyed lookup of the tools the model may call.

A :class:`Tool` bundles its definition with the coroutine implementing it
and declares which of its arguments are filesystem paths or shell
commands, so the dispatcher can apply the right policy before it runs.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from devagent.agent.environment import ExecutionEnvironment
from devagent.agent.policy import PathPolicy
from devagent.agent.truncation import TruncationConfig
from devagent.llm.models import ToolDefinition

if TYPE_CHECKING:
    from devagent.agent.capabilities import CapabilityRegistry
    from devagent.agent.messaging import Messenger, Screenshotter

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Everything a tool implementation may touch.

    Attributes:
        environment: Filesystem and subprocess access.
        paths: The path policy, for tools that derive extra paths.
        messenger: Outbound messaging transport, if any.
        screenshotter: Screenshot backend, if any.
        memory_dir: Directory (relative to the workdir) for notes.
        default_command_timeout_s: Timeout when the model gives none.
        max_command_timeout_s: Ceiling for model-requested timeouts.
        dev_server_url: Default page for screenshots.
        registry: The tool table active for the current turn.
        capabilities: Lazily-loadable tool groups.
        truncation: Output limits, including the per-stream limits of
            ``run_command``.
    """

    environment: ExecutionEnvironment
    paths: PathPolicy
    messenger: Messenger | None = None
    screenshotter: Screenshotter | None = None
    memory_dir: str = "memory"
    default_command_timeout_s: float = 120.0
    max_command_timeout_s: float = 600.0
    dev_server_url: str = "http://localhost:5173"
    registry: ToolRegistry | None = None
    capabilities: CapabilityRegistry | None = None
    truncation: TruncationConfig = field(default_factory=TruncationConfig)


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[str]]


@dataclass(frozen=True)
class Tool:
    """A callable tool and the policy hints for its arguments.

    Attributes:
        definition: Name, description and JSON schema sent to the model.
        handler: ``async (arguments, context) -> str``.
        path_args: Argument names holding filesystem paths.
        command_args: Argument names holding shell commands.
    """

    definition: ToolDefinition
    handler: ToolHandler
    path_args: tuple[str, ...] = ()
    command_args: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.definition.name

    async def execute(self, arguments: dict[str, Any], context: ToolContext) -> str:
        return await self.handler(arguments, context)


@dataclass
class ToolRegistry:
    """Maps tool names to tools.

    Example::

        registry = ToolRegistry()
        registry.register(READ_FILE)
        tool = registry.get("read_file")
    """

    _tools: dict[str, Tool] = field(default_factory=dict)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.debug("Replacing registered tool '%s'", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def tool_names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        """Return the definitions in registration order."""
        return [t.definition for t in self._tools.values()]

    def copy(self) -> ToolRegistry:
        """Return an independent registry holding the same tools."""
        return ToolRegistry(dict(self._tools))

    def __len__(self) -> int:
        return len(self._tools)

"""Capability registry: tool groups loaded only when the model asks.

Only a one-line summary of each capability goes into every prompt. The
full tool definitions are imported on demand through the
``load_capability`` meta tool and live only for the rest of that turn.

A capability module must expose ``create_tools() -> list[Tool]``.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from types import ModuleType

from devagent.agent.tools.registry import Tool

logger = logging.getLogger(__name__)


class CapabilityError(Exception):
    """A capability could not be found or loaded."""


@dataclass(frozen=True)
class Capability:
    """Static metadata for one lazily-loadable tool group.

    Attributes:
        name: Identifier passed to ``load_capability``.
        description: One-line summary shown in every prompt.
        module: Dotted import path of the implementing module.
        tool_names: Names of the tools the module provides.
        trigger_hints: Phrases suggesting the capability is needed.
    """

    name: str
    description: str
    module: str
    tool_names: tuple[str, ...] = ()
    trigger_hints: tuple[str, ...] = ()


@dataclass(frozen=True)
class CapabilitySummary:
    """The lightweight catalog entry returned by :meth:`CapabilityRegistry.list`."""

    name: str
    description: str
    tool_names: tuple[str, ...] = ()


BUILTIN_CAPABILITIES: tuple[Capability, ...] = (
    Capability(
        name="web",
        description="Fetch web pages and JSON APIs over HTTP.",
        module="devagent.capabilities.web",
        tool_names=("fetch_url",),
        trigger_hints=("look up a URL", "check an API response", "read documentation online"),
    ),
    Capability(
        name="browser",
        description="Screenshot the running dev server in desktop or mobile viewports.",
        module="devagent.capabilities.browser",
        tool_names=("take_screenshot",),
        trigger_hints=("check how a page looks", "take a screenshot", "review UI changes"),
    ),
)


@dataclass
class CapabilityRegistry:
    """Read-only catalog of capabilities, safe to share across sessions."""

    capabilities: tuple[Capability, ...] = BUILTIN_CAPABILITIES
    _modules: dict[str, ModuleType] = field(default_factory=dict, repr=False)

    def list(self) -> list[CapabilitySummary]:
        return [
            CapabilitySummary(c.name, c.description, c.tool_names) for c in self.capabilities
        ]

    def names(self) -> list[str]:
        return [c.name for c in self.capabilities]

    def get(self, name: str) -> Capability | None:
        return next((c for c in self.capabilities if c.name == name), None)

    def owner_of(self, tool_name: str) -> str | None:
        """Return the capability providing *tool_name*, if any."""
        for cap in self.capabilities:
            if tool_name in cap.tool_names:
                return cap.name
        return None

    def load(self, name: str) -> list[Tool]:
        """Import capability *name* and build its tools.

        The module import is cached; the tools are built fresh each time.

        Raises:
            CapabilityError: If the name is unknown or the module fails
                to import or to provide ``create_tools``.
        """
        cap = self.get(name)
        if cap is None:
            raise CapabilityError(
                f"Unknown capability '{name}'. Available: {', '.join(self.names())}"
            )
        module = self._modules.get(cap.module)
        if module is None:
            try:
                module = importlib.import_module(cap.module)
            except ImportError as exc:
                raise CapabilityError(f"Could not import capability '{name}': {exc}") from exc
            self._modules[cap.module] = module
        factory = getattr(module, "create_tools", None)
        if factory is None:
            raise CapabilityError(f"Capability module {cap.module} has no create_tools()")
        tools: list[Tool] = list(factory())
        logger.info("Loaded capability %s (%d tools)", name, len(tools))
        return tools

    def hints(self) -> str:
        """Render the capability section of the system prompt."""
        if not self.capabilities:
            return ""
        lines = ["Additional capabilities (call load_capability first to use their tools):"]
        for cap in self.capabilities:
            line = f"- {cap.name}: {cap.description}"
            if cap.tool_names:
                line += f" Tools: {', '.join(cap.tool_names)}."
            if cap.trigger_hints:
                line += f" Use when you need to {'; '.join(cap.trigger_hints)}."
            lines.append(line)
        return "\n".join(lines)

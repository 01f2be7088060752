"""Tool table, dispatch and the core developer tools."""

from devagent.agent.tools.dispatcher import ToolDispatcher
from devagent.agent.tools.registry import Tool, ToolContext, ToolRegistry

__all__ = ["Tool", "ToolContext", "ToolDispatcher", "ToolRegistry"]

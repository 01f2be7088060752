"""The ``load_capability`` meta tool."""

from __future__ import annotations

from typing import Any

from devagent.agent.capabilities import CapabilityError, CapabilityRegistry
from devagent.agent.tools.registry import Tool, ToolContext
from devagent.llm.models import ToolDefinition


async def load_capability(arguments: dict[str, Any], ctx: ToolContext) -> str:
    """Register a capability's tools into the current turn's registry."""
    name: str = arguments["name"]
    if ctx.capabilities is None or ctx.registry is None:
        return "Error: No capabilities are available."

    cap = ctx.capabilities.get(name)
    if cap is not None and cap.tool_names and all(
        ctx.registry.has_tool(t) for t in cap.tool_names
    ):
        return f"Capability '{name}' is already loaded. Tools: {', '.join(cap.tool_names)}"

    try:
        tools = ctx.capabilities.load(name)
    except CapabilityError as exc:
        return f"Error: {exc}"
    for tool in tools:
        ctx.registry.register(tool)
    names = ", ".join(t.name for t in tools)
    return f"Loaded capability '{name}'. New tools available for this turn: {names}"


def make_load_capability_tool(capabilities: CapabilityRegistry) -> Tool:
    """Build the meta tool, listing every capability in its description."""
    listing = "\n".join(f"- {c.name}: {c.description}" for c in capabilities.list())
    definition = ToolDefinition(
        name="load_capability",
        description=(
            "Load a capability to get access to its specialized tools. "
            f"Available capabilities:\n{listing}\n"
            "The new tools can be used for the rest of this turn."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "enum": capabilities.names(),
                    "description": "Name of the capability to load.",
                },
            },
            "required": ["name"],
        },
    )
    return Tool(definition, load_capability)

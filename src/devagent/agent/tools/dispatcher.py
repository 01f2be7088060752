"""Tool dispatcher: the policy layer between the model and the tools.

``ToolDispatcher.execute`` never raises. Every failure comes back as a
string starting with ``"Error"`` so the conversation loop can feed it to
the model and carry on. Policy refusals are worded
``"Error: Blocked by <policy> policy: ..."`` so they are distinguishable
from execution failures.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any

from devagent.agent.policy import CommandPolicy, PolicyViolation
from devagent.agent.redaction import redact_secrets
from devagent.agent.tools.registry import Tool, ToolContext, ToolRegistry
from devagent.agent.truncation import TruncationConfig, truncate_output

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Looks up, validates, polices and runs tool calls.

    Args:
        registry: The tool table to dispatch against.
        context: Shared tool context (environment, path policy, ...).
        command_policy: Deny-list and rewrite rules for shell commands.
        truncation: Output limits. Replaces the context's limits when given.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        context: ToolContext,
        command_policy: CommandPolicy | None = None,
        truncation: TruncationConfig | None = None,
    ) -> None:
        self.registry = registry
        self.context = dataclasses.replace(
            context, registry=registry, truncation=truncation or context.truncation
        )
        self.command_policy = command_policy or CommandPolicy()

    @property
    def truncation(self) -> TruncationConfig:
        return self.context.truncation

    def for_turn(self) -> ToolDispatcher:
        """Return a dispatcher over a private copy of the registry.

        Capability tools loaded during a turn are registered into the
        copy and disappear with it.
        """
        return ToolDispatcher(
            self.registry.copy(),
            self.context,
            command_policy=self.command_policy,
            truncation=self.truncation,
        )

    async def execute(self, name: str, arguments: dict[str, Any] | None) -> str:
        """Run tool *name* with *arguments* and return its result text."""
        tool = self.registry.get(name)
        if tool is None:
            return self._unknown_tool(name)

        args = dict(arguments or {})
        error = validate_arguments(tool, args)
        if error:
            return f"Error: Invalid arguments for {name}: {error}"

        try:
            args = self._apply_policy(tool, args)
        except PolicyViolation as exc:
            return f"Error: Blocked by {exc.policy} policy: {exc.reason}"

        logger.info("Executing tool %s", name)
        try:
            output = await tool.execute(args, self.context)
        except Exception as exc:
            logger.exception("Unhandled exception in tool '%s'", name)
            output = f"Error executing {name}: {exc}"

        if not isinstance(output, str):
            output = str(output)
        return redact_secrets(truncate_output(name, output, self.truncation))

    def _unknown_tool(self, name: str) -> str:
        capabilities = self.context.capabilities
        owner = capabilities.owner_of(name) if capabilities else None
        if owner is not None:
            return (
                f"Error: Tool '{name}' belongs to the '{owner}' capability, which "
                f"is not loaded. Call load_capability with name='{owner}' first."
            )
        available = ", ".join(sorted(self.registry.tool_names()))
        return f"Error: Unknown tool '{name}'. Available tools: {available}"

    def _apply_policy(self, tool: Tool, args: dict[str, Any]) -> dict[str, Any]:
        for key in tool.path_args:
            if isinstance(args.get(key), str):
                args[key] = self.context.paths.normalize(args[key])
        for key in tool.command_args:
            if isinstance(args.get(key), str):
                args[key] = self.command_policy.check(args[key])
        return args


# ---------------------------------------------------------------------------
# JSON schema validation
# ---------------------------------------------------------------------------

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
    "null": (type(None),),
}


def _check_json_type(value: Any, expected: str | list[str]) -> bool:
    if isinstance(expected, list):
        return any(_check_json_type(value, e) for e in expected)
    types = _JSON_TYPES.get(expected)
    if types is None:
        return True
    # bool is a subclass of int, but JSON keeps them apart.
    if expected in ("integer", "number") and isinstance(value, bool):
        return False
    return isinstance(value, types)


def validate_arguments(tool: Tool, arguments: dict[str, Any]) -> str | None:
    """Validate *arguments* against the tool's input schema.

    Returns:
        A description of the first problem found, or ``None`` if valid.
    """
    schema = tool.definition.input_schema or {}
    for field_name in schema.get("required", []):
        if field_name not in arguments:
            return f"missing required argument '{field_name}'"
    properties = schema.get("properties", {})
    for field_name, value in arguments.items():
        if field_name in properties:
            error = _validate_value(value, properties[field_name], field_name)
            if error:
                return error
    return None


def _validate_value(value: Any, schema: dict[str, Any], field_name: str) -> str | None:
    expected_type = schema.get("type")
    if expected_type and not _check_json_type(value, expected_type):
        return (
            f"argument '{field_name}' expected type '{expected_type}', "
            f"got '{type(value).__name__}'"
        )
    if "enum" in schema and value not in schema["enum"]:
        return f"argument '{field_name}' must be one of {schema['enum']}, got '{value}'"

    if isinstance(value, str):
        if "pattern" in schema and not re.search(schema["pattern"], value):
            return f"argument '{field_name}' does not match pattern '{schema['pattern']}'"
        if "minLength" in schema and len(value) < schema["minLength"]:
            return f"argument '{field_name}' is shorter than {schema['minLength']} characters"
        if "maxLength" in schema and len(value) > schema["maxLength"]:
            return f"argument '{field_name}' is longer than {schema['maxLength']} characters"

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if "minimum" in schema and value < schema["minimum"]:
            return f"argument '{field_name}' value {value} is below minimum {schema['minimum']}"
        if "maximum" in schema and value > schema["maximum"]:
            return f"argument '{field_name}' value {value} exceeds maximum {schema['maximum']}"

    if isinstance(value, list) and "items" in schema:
        for i, item in enumerate(value):
            error = _validate_value(item, schema["items"], f"{field_name}[{i}]")
            if error:
                return error

    if isinstance(value, dict) and "properties" in schema:
        for req in schema.get("required", []):
            if req not in value:
                return f"missing required field '{req}' in '{field_name}'"
        for key, nested in value.items():
            if key in schema["properties"]:
                error = _validate_value(nested, schema["properties"][key], f"{field_name}.{key}")
                if error:
                    return error
    return None

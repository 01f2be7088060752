"""Tests for ToolDispatcher: lookup, validation, policy and output shaping."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from devagent.agent.environment import ExecResult
from devagent.agent.policy import PathPolicy
from devagent.agent.tools.core_tools import RUN_COMMAND
from devagent.agent.tools.dispatcher import ToolDispatcher, validate_arguments
from devagent.agent.tools.registry import Tool, ToolContext, ToolRegistry
from devagent.agent.truncation import OutputLimit, TruncationConfig
from devagent.llm.models import ToolDefinition


def _custom_tool(name: str, handler, schema: dict | None = None) -> Tool:
    return Tool(
        ToolDefinition(
            name=name,
            description=f"{name} tool",
            input_schema=schema or {"type": "object", "properties": {}},
        ),
        handler,
    )


@pytest.fixture()
def mock_env() -> MagicMock:
    env = MagicMock()
    env.exec_command = AsyncMock(return_value=ExecResult(stdout="ok\n"))
    env.working_directory.return_value = "/tmp/test"
    return env


@pytest.fixture()
def mocked_dispatcher(mock_env, tmp_path) -> ToolDispatcher:
    registry = ToolRegistry()
    registry.register(RUN_COMMAND)
    return ToolDispatcher(registry, ToolContext(environment=mock_env, paths=PathPolicy(tmp_path)))


class TestLookup:
    async def test_unknown_tool_lists_available(self, dispatcher) -> None:
        result = await dispatcher.execute("delete_everything", {})
        assert result.startswith("Error: Unknown tool 'delete_everything'. Available tools:")
        assert "read_file" in result

    async def test_capability_tool_points_at_loader(self, dispatcher) -> None:
        result = await dispatcher.execute("fetch_url", {"url": "https://example.com"})
        assert result == (
            "Error: Tool 'fetch_url' belongs to the 'web' capability, which is not "
            "loaded. Call load_capability with name='web' first."
        )

    def test_for_turn_copies_registry(self, dispatcher) -> None:
        turn = dispatcher.for_turn()
        turn.registry.register(_custom_tool("extra", AsyncMock(return_value="x")))

        assert turn.registry.has_tool("extra")
        assert not dispatcher.registry.has_tool("extra")
        assert turn.context.registry is turn.registry
        assert turn.context.environment is dispatcher.context.environment


class TestValidation:
    async def test_missing_required_argument(self, dispatcher) -> None:
        result = await dispatcher.execute("read_file", {})
        assert result == "Error: Invalid arguments for read_file: missing required argument 'path'"

    async def test_wrong_type(self, dispatcher) -> None:
        result = await dispatcher.execute("read_file", {"path": 3})
        assert "expected type 'string'" in result

    async def test_none_arguments_treated_as_empty(self, dispatcher) -> None:
        result = await dispatcher.execute("list_files", None)
        assert not result.startswith("Error")

    def test_bool_is_not_a_number(self) -> None:
        assert "expected type 'number'" in validate_arguments(RUN_COMMAND, {"command": "ls", "timeout_seconds": True})

    def test_minimum_enforced(self) -> None:
        assert "below minimum" in validate_arguments(RUN_COMMAND, {"command": "ls", "timeout_seconds": 0})

    def test_nested_schema(self) -> None:
        tool = _custom_tool(
            "nested",
            AsyncMock(),
            {
                "type": "object",
                "properties": {
                    "items": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {"n": {"type": "integer"}},
                            "required": ["n"],
                        },
                    }
                },
            },
        )
        assert validate_arguments(tool, {"items": [{"n": 1}]}) is None
        assert "missing required field 'n'" in validate_arguments(tool, {"items": [{}]})
        assert "items[0].n" in validate_arguments(tool, {"items": [{"n": "one"}]})


class TestPolicy:
    async def test_rm_rf_root_never_reaches_the_shell(self, mocked_dispatcher, mock_env) -> None:
        result = await mocked_dispatcher.execute("run_command", {"command": "rm -rf /"})

        assert result.startswith("Error: Blocked by command policy:")
        mock_env.exec_command.assert_not_awaited()

    async def test_rewritten_command_is_what_runs(self, mocked_dispatcher, mock_env) -> None:
        await mocked_dispatcher.execute("run_command", {"command": "killall vite"})

        mock_env.exec_command.assert_awaited_once_with('pkill -x -u "$(id -u)" vite', timeout_s=120.0)

    async def test_path_escape_is_refused(self, dispatcher) -> None:
        result = await dispatcher.execute("read_file", {"path": "/etc/passwd"})
        assert result.startswith("Error: Blocked by path policy:")


class TestOutputShaping:
    async def test_handler_exception_becomes_error_string(self, dispatcher) -> None:
        dispatcher.registry.register(_custom_tool("boom", AsyncMock(side_effect=ValueError("kaboom"))))
        result = await dispatcher.execute("boom", {})
        assert result == "Error executing boom: kaboom"

    async def test_secrets_in_output_are_redacted(self, dispatcher) -> None:
        key = "sk-ant-api03-" + "z" * 40
        dispatcher.registry.register(_custom_tool("leak", AsyncMock(return_value=f"KEY={key}")))
        result = await dispatcher.execute("leak", {})
        assert key not in result
        assert result.startswith("KEY=sk-a****")

    async def test_output_is_truncated(self, tool_context) -> None:
        registry = ToolRegistry()
        registry.register(_custom_tool("echo", AsyncMock(return_value="y" * 100)))
        dispatcher = ToolDispatcher(
            registry,
            tool_context,
            truncation=TruncationConfig(tool_limits={"echo": OutputLimit(10)}),
        )
        result = await dispatcher.execute("echo", {})
        assert "WARNING: Tool output was truncated" in result
        assert result.startswith("yyyyy")
        assert result.endswith("yyyyy")

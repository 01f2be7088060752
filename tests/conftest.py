"""Shared fixtures: a scratch project, a tool context and API-key gates."""

from __future__ import annotations

import os

import pytest
from dotenv import load_dotenv

from devagent.agent.capabilities import CapabilityRegistry
from devagent.agent.environment import LocalExecutionEnvironment
from devagent.agent.policy import PathPolicy
from devagent.agent.tools.capability_tools import make_load_capability_tool
from devagent.agent.tools.core_tools import CORE_TOOLS
from devagent.agent.tools.dispatcher import ToolDispatcher
from devagent.agent.tools.registry import ToolContext, ToolRegistry

# Load API keys from .env.local (project root)
load_dotenv(".env.local")


def _has_key(env_var: str) -> bool:
    """Return True if the environment variable is set and non-placeholder."""
    val = os.environ.get(env_var, "")
    return bool(val) and val != "your-key-here"


@pytest.fixture(scope="session")
def requires_anthropic_key() -> None:
    """Skip the test if ANTHROPIC_API_KEY is missing or placeholder."""
    if not _has_key("ANTHROPIC_API_KEY"):
        pytest.skip("ANTHROPIC_API_KEY not set, skipping smoke test")


@pytest.fixture(scope="session")
def requires_xai_key() -> None:
    """Skip the test if XAI_API_KEY is missing or placeholder."""
    if not _has_key("XAI_API_KEY"):
        pytest.skip("XAI_API_KEY not set, skipping smoke test")


class RecordingMessenger:
    """Messenger double that keeps everything it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send_message(self, text: str) -> None:
        self.sent.append(text)


@pytest.fixture()
def project(tmp_path):
    """An empty project directory named ``project``."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture()
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture()
def tool_context(project, messenger) -> ToolContext:
    return ToolContext(
        environment=LocalExecutionEnvironment(project),
        paths=PathPolicy(project),
        messenger=messenger,
        capabilities=CapabilityRegistry(),
    )


@pytest.fixture()
def dispatcher(tool_context) -> ToolDispatcher:
    """A dispatcher over the core tools plus ``load_capability``."""
    registry = ToolRegistry()
    for tool in CORE_TOOLS:
        registry.register(tool)
    registry.register(make_load_capability_tool(tool_context.capabilities))
    return ToolDispatcher(registry, tool_context)

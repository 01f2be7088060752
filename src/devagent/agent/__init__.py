"""Tool-use conversation orchestrator and its building blocks."""

from devagent.agent.environment import (
    ExecutionEnvironment,
    ExecResult,
    LocalExecutionEnvironment,
)
from devagent.agent.events import AgentEvent, AgentEventType, EventEmitter
from devagent.agent.history import ConversationHistory
from devagent.agent.orchestrator import (
    OrchestratorConfig,
    TurnOrchestrator,
    TurnState,
    build_orchestrator,
)

__all__ = [
    "AgentEvent",
    "AgentEventType",
    "ConversationHistory",
    "EventEmitter",
    "ExecResult",
    "ExecutionEnvironment",
    "LocalExecutionEnvironment",
    "OrchestratorConfig",
    "TurnOrchestrator",
    "TurnState",
    "build_orchestrator",
]

"""Turn orchestrator: drives one human message to a finished answer.

State machine per human turn::

    INIT -> AWAITING_COMPLETION -> (TOOL_USE <-> AWAITING_COMPLETION)*
         -> FINALIZING -> DONE
    any state -> ERROR on an unrecoverable provider failure

Tool calls run one at a time in the order the model emitted them. All LLM
round trips of a human turn, corrective ones included, share a single
iteration budget. Once the turn is answered the tool scaffolding is
pruned from history, leaving only the human text and the final answer.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from devagent.agent.capabilities import CapabilityRegistry
from devagent.agent.environment import LocalExecutionEnvironment
from devagent.agent.events import AgentEvent, AgentEventType, EventEmitter
from devagent.agent.hallucination import HallucinationGuard
from devagent.agent.history import ConversationHistory, HistoryMark
from devagent.agent.messaging import Attachment, Messenger, Screenshotter
from devagent.agent.policy import CommandPolicy, PathPolicy
from devagent.agent.prompts import build_system_prompt
from devagent.agent.redaction import redact_secrets
from devagent.agent.sanitize import sanitize
from devagent.agent.tools.capability_tools import make_load_capability_tool
from devagent.agent.tools.core_tools import CORE_TOOLS
from devagent.agent.tools.dispatcher import ToolDispatcher
from devagent.agent.tools.registry import ToolContext, ToolRegistry
from devagent.config import AgentConfig
from devagent.llm.client import LLMClient
from devagent.llm.models import (
    CompletionRequest,
    CompletionResponse,
    ContentBlock,
    Role,
    StopReason,
    TextBlock,
    ToolOutcome,
    Turn,
)

logger = logging.getLogger(__name__)

NO_ANSWER_TEXT = "I could not produce an answer for this request."


# ---------------------------------------------------------------------------
# Protocols & configuration
# ---------------------------------------------------------------------------


@runtime_checkable
class LLMClientProtocol(Protocol):
    """Minimal interface the orchestrator needs from an LLM client."""

    async def complete(self, request: CompletionRequest) -> CompletionResponse: ...


class TurnState(str, enum.Enum):
    INIT = "init"
    AWAITING_COMPLETION = "awaiting_completion"
    TOOL_USE = "tool_use"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class OrchestratorConfig:
    """Immutable per-session settings.

    Attributes:
        model: Model identifier sent with every request.
        max_output_tokens: Token budget per completion.
        max_iterations: LLM round trips per human turn, shared by the
            tool-use loop and any corrective loops.
        max_hallucination_retries: Corrective re-prompts per human turn.
        user_instructions: Operator overrides appended to the prompt.
        transient_dir: Scratch directory named in the prompt.
    """

    model: str = ""
    max_output_tokens: int = 8192
    max_iterations: int = 30
    max_hallucination_retries: int = 1
    user_instructions: str = ""
    transient_dir: str = "tmp"

    @classmethod
    def from_agent_config(cls, config: AgentConfig) -> OrchestratorConfig:
        return cls(
            model=config.model,
            max_output_tokens=config.max_output_tokens,
            max_iterations=config.max_iterations,
            max_hallucination_retries=config.max_hallucination_retries,
            transient_dir=config.transient_dir,
        )


class _CompletionFailed(Exception):
    """Internal: the provider call failed for good."""


@dataclass
class _Budget:
    limit: int
    used: int = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.used


@dataclass
class _LoopResult:
    final_text: str = ""
    last_text: str = ""
    tool_calls: int = 0
    last_outcomes: list[tuple[str, ToolOutcome]] = field(default_factory=list)
    exhausted: bool = False


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class TurnOrchestrator:
    """Answers human turns for one conversation.

    Args:
        llm: Completion client (normally an :class:`LLMClient`).
        dispatcher: Tool dispatcher holding the core tool table.
        messenger: Where final answers and error notices go.
        history: Conversation state; a fresh one is created if omitted.
        guard: Hallucination classifier.
        config: Session settings.
        emitter: Event sink for front ends.
        capabilities: Capability catalog, summarized in the prompt.
        prompt_builder: Returns the system prompt text. Defaults to
            :func:`build_system_prompt` for the dispatcher's workdir.
    """

    def __init__(
        self,
        llm: LLMClientProtocol,
        dispatcher: ToolDispatcher,
        messenger: Messenger,
        *,
        history: ConversationHistory | None = None,
        guard: HallucinationGuard | None = None,
        config: OrchestratorConfig | None = None,
        emitter: EventEmitter | None = None,
        capabilities: CapabilityRegistry | None = None,
        prompt_builder: Callable[[], str] | None = None,
    ) -> None:
        self._llm = llm
        self._dispatcher = dispatcher
        self._messenger = messenger
        self.history = history or ConversationHistory()
        self._guard = guard or HallucinationGuard()
        self.config = config or OrchestratorConfig()
        self.emitter = emitter or EventEmitter()
        self._capabilities = capabilities
        self._prompt_builder = prompt_builder or self._default_prompt
        self._lock = asyncio.Lock()
        self.state = TurnState.DONE

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    @property
    def dispatcher(self) -> ToolDispatcher:
        """The dispatcher holding the core tool table."""
        return self._dispatcher

    async def handle_turn(
        self,
        human_text: str,
        attachment: Attachment | str | Path | None = None,
    ) -> str | None:
        """Answer one human message.

        Concurrent calls queue behind the turn in flight.

        Returns:
            The final answer text, or ``None`` after an unrecoverable
            provider failure (the operator has already been notified).
        """
        async with self._lock:
            return await self._run_turn(human_text, attachment)

    def reset(self) -> None:
        """Forget the conversation (operator ``/clear``)."""
        self.history.clear()
        logger.info("Conversation history cleared")

    # -----------------------------------------------------------------
    # State machine
    # -----------------------------------------------------------------

    def _transition(self, state: TurnState) -> None:
        logger.debug("Turn state %s -> %s", self.state.value, state.value)
        self.state = state

    async def _run_turn(
        self, human_text: str, attachment: Attachment | str | Path | None
    ) -> str | None:
        self._transition(TurnState.INIT)
        self.emitter.emit(AgentEvent(AgentEventType.TURN_START, {"text": human_text}))
        self.history.append(self._human_turn(human_text, attachment))
        mark = self.history.mark()

        try:
            system_text = sanitize(await asyncio.to_thread(self._prompt_builder))
        except OSError as exc:
            logger.warning("Falling back to a minimal system prompt: %s", exc)
            system_text = "You are an autonomous developer agent."
        dispatcher = self._dispatcher.for_turn()
        budget = _Budget(self.config.max_iterations)

        try:
            result = await self._tool_loop(system_text, dispatcher, budget)
        except _CompletionFailed as exc:
            return await self._fail(mark, exc.__cause__ or exc)

        self._transition(TurnState.FINALIZING)
        final_text = result.final_text or self._synthesize(result)
        final_text = await self._correct_hallucinations(
            final_text, result.tool_calls, system_text, dispatcher, budget
        )

        self.history.rewind(mark)
        self.history.prune_tool_scaffolding()
        self.history.append(Turn.agent(final_text))

        self._transition(TurnState.DONE)
        await self._deliver(final_text)
        self.emitter.emit(
            AgentEvent(
                AgentEventType.TURN_END,
                {"text": final_text, "iterations": budget.used},
            )
        )
        return final_text

    async def _tool_loop(
        self, system_text: str, dispatcher: ToolDispatcher, budget: _Budget
    ) -> _LoopResult:
        """Run completion/tool rounds until a final answer or budget exhaustion."""
        result = _LoopResult()
        while budget.remaining > 0:
            self._transition(TurnState.AWAITING_COMPLETION)
            request = CompletionRequest(
                system_text=system_text,
                tools=dispatcher.registry.definitions(),
                history=self.history.materialize(),
                max_output_tokens=self.config.max_output_tokens,
                model=self.config.model,
            )
            try:
                response = await self._llm.complete(request)
            except Exception as exc:
                raise _CompletionFailed(str(exc)) from exc
            budget.used += 1

            text = sanitize(response.text()).strip()
            if text:
                result.last_text = text
            elif response.raw_fallback:
                logger.warning("Provider returned unusable content; treating as empty")

            invocations = response.tool_invocations()
            if response.stop_reason != StopReason.TOOL_USE or not invocations:
                if response.stop_reason == StopReason.MAX_TOKENS:
                    logger.warning("Completion stopped at the output token limit")
                result.final_text = text
                return result

            self._transition(TurnState.TOOL_USE)
            outcomes: list[ToolOutcome] = []
            result.last_outcomes = []
            for inv in invocations:
                self.emitter.emit(
                    AgentEvent(
                        AgentEventType.TOOL_CALL_START,
                        {"tool_name": inv.name, "tool_call_id": inv.id, "arguments": inv.arguments},
                    )
                )
                output = sanitize(await dispatcher.execute(inv.name, inv.arguments))
                outcome = ToolOutcome(
                    invocation_id=inv.id,
                    text=output,
                    is_error=output.startswith("Error"),
                )
                outcomes.append(outcome)
                result.last_outcomes.append((inv.name, outcome))
                result.tool_calls += 1
                self.emitter.emit(
                    AgentEvent(
                        AgentEventType.TOOL_CALL_END,
                        {"tool_name": inv.name, "tool_call_id": inv.id, "output": output, "is_error": outcome.is_error},
                    )
                )
            self.history.append(response.as_turn())
            self.history.append(Turn.outcomes(outcomes))

        logger.warning("Iteration limit (%d) reached for this turn", budget.limit)
        self.emitter.emit(AgentEvent(AgentEventType.ITERATION_LIMIT, {"limit": budget.limit}))
        result.exhausted = True
        result.final_text = result.last_text
        return result

    async def _correct_hallucinations(
        self,
        final_text: str,
        tool_calls: int,
        system_text: str,
        dispatcher: ToolDispatcher,
        budget: _Budget,
    ) -> str:
        """Re-prompt while the answer claims actions no tool performed.

        Failures here are best effort: the answer as it stands is kept.
        """
        corrections = 0
        while corrections < self.config.max_hallucination_retries:
            verdict = self._guard.check(final_text, tool_calls)
            if not verdict.triggered:
                break
            self.emitter.emit(
                AgentEvent(
                    AgentEventType.HALLUCINATION_DETECTED,
                    {"pattern": verdict.matched_pattern, "text": final_text},
                )
            )
            if budget.remaining <= 0:
                logger.warning("No iteration budget left for a corrective loop")
                break
            corrections += 1
            self.history.append(Turn.agent(final_text))
            self.history.append(Turn.human(self._guard.corrective_instruction))
            try:
                corrected = await self._tool_loop(system_text, dispatcher, budget)
            except _CompletionFailed as exc:
                logger.warning("Corrective loop failed, keeping previous answer: %s", exc)
                break
            tool_calls += corrected.tool_calls
            if corrected.final_text:
                final_text = corrected.final_text
            elif corrected.last_outcomes:
                final_text = self._synthesize(corrected)
        return final_text

    async def _fail(self, mark: HistoryMark, exc: BaseException) -> None:
        self._transition(TurnState.ERROR)
        logger.error("Turn failed: %s: %s", type(exc).__name__, exc)
        self.history.rewind(mark)
        notice = redact_secrets(
            f"Error: the request could not be completed ({type(exc).__name__}: {str(exc)[:300]})"
        )
        self.emitter.emit(AgentEvent(AgentEventType.ERROR, {"error": notice}))
        await self._deliver(notice)
        return None

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    async def _deliver(self, text: str) -> None:
        try:
            await self._messenger.send_message(redact_secrets(text))
        except Exception:
            logger.exception("Messenger failed to deliver the answer")

    @staticmethod
    def _synthesize(result: _LoopResult) -> str:
        """Build an answer from the last tool outcomes when the model gave none."""
        if not result.last_outcomes:
            return result.last_text or NO_ANSWER_TEXT
        failed = [(n, o) for n, o in result.last_outcomes if o.is_error]
        lines = [
            f"- {name}: {_first_line(outcome.text)}" for name, outcome in result.last_outcomes
        ]
        if failed:
            header = f"{len(failed)} of {len(result.last_outcomes)} step(s) failed:"
        else:
            header = "Completed the following step(s):"
        return "\n".join([header, *lines])

    @staticmethod
    def _human_turn(text: str, attachment: Attachment | str | Path | None) -> Turn:
        blocks: list[ContentBlock] = []
        if attachment is not None:
            if not isinstance(attachment, Attachment):
                attachment = Attachment(path=Path(attachment))
            note = f"[Attached file: {attachment.path}]"
            if attachment.is_image:
                try:
                    blocks.append(attachment.to_block())
                    note = f"[Attached image: {attachment.path.name}]"
                except OSError as exc:
                    logger.warning("Could not read attachment %s: %s", attachment.path, exc)
            text = f"{text}\n{note}" if text else note
        blocks.insert(0, TextBlock(text=text))
        return Turn(role=Role.HUMAN, content=blocks)

    def _default_prompt(self) -> str:
        return build_system_prompt(
            self._dispatcher.context.environment.working_directory(),
            model_id=self.config.model,
            capabilities=self._capabilities,
            user_instructions=self.config.user_instructions,
            transient_dir=self.config.transient_dir,
        )


def _first_line(text: str, limit: int = 200) -> str:
    line = text.strip().splitlines()[0] if text.strip() else "(no output)"
    return line if len(line) <= limit else line[:limit] + "..."


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_orchestrator(
    config: AgentConfig,
    messenger: Messenger,
    *,
    llm: LLMClientProtocol | None = None,
    screenshotter: Screenshotter | None = None,
    capabilities: CapabilityRegistry | None = None,
    emitter: EventEmitter | None = None,
) -> TurnOrchestrator:
    """Assemble an orchestrator with the core tools from *config*."""
    capabilities = capabilities or CapabilityRegistry()
    registry = ToolRegistry()
    for tool in CORE_TOOLS:
        registry.register(tool)
    registry.register(make_load_capability_tool(capabilities))

    context = ToolContext(
        environment=LocalExecutionEnvironment(config.workdir),
        paths=PathPolicy(
            config.workdir,
            transient_dir=config.transient_dir,
            root_aliases=config.project_root_aliases,
        ),
        messenger=messenger,
        screenshotter=screenshotter,
        memory_dir=config.memory_dir,
        default_command_timeout_s=config.default_command_timeout_s,
        max_command_timeout_s=config.max_command_timeout_s,
        dev_server_url=config.dev_server_url,
        capabilities=capabilities,
    )
    dispatcher = ToolDispatcher(
        registry,
        context,
        command_policy=CommandPolicy(protected_processes=list(config.protected_processes)),
    )
    return TurnOrchestrator(
        llm or LLMClient.from_config(config),
        dispatcher,
        messenger,
        history=ConversationHistory(config.max_history_turns),
        config=OrchestratorConfig.from_agent_config(config),
        emitter=emitter,
        capabilities=capabilities,
    )

"""Agent event system for observing turn progress.

The orchestrator emits :class:`AgentEvent` objects to subscribed callbacks.
The CLI subscribes one to render tool activity.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class AgentEventType(str, enum.Enum):
    """Types of events emitted while answering a human turn."""

    TURN_START = "turn_start"
    TURN_END = "turn_end"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_END = "tool_call_end"
    HALLUCINATION_DETECTED = "hallucination_detected"
    ITERATION_LIMIT = "iteration_limit"
    ERROR = "error"


@dataclass
class AgentEvent:
    """A single event from the orchestrator.

    Args:
        type: The kind of event.
        data: Event payload; contents vary by event type.
        timestamp: Unix timestamp when the event was created.
    """

    type: AgentEventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


EventListener = Callable[[AgentEvent], None]


class EventEmitter:
    """Fans events out to subscribed listeners.

    Example::

        emitter = EventEmitter()
        emitter.subscribe(lambda e: print(e.type))
        emitter.emit(AgentEvent(type=AgentEventType.TURN_START))
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def emit(self, event: AgentEvent) -> None:
        """Deliver *event* to every listener. Listener errors are logged."""
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed on %s", event.type.value)

"""Tests for the event emitter."""

from __future__ import annotations

from devagent.agent.events import AgentEvent, AgentEventType, EventEmitter


class TestEventEmitter:
    def test_listeners_receive_events(self) -> None:
        emitter = EventEmitter()
        received: list[AgentEvent] = []
        emitter.subscribe(received.append)

        emitter.emit(AgentEvent(AgentEventType.TURN_START, {"text": "hi"}))

        assert [e.type for e in received] == [AgentEventType.TURN_START]
        assert received[0].data == {"text": "hi"}

    def test_failing_listener_does_not_break_others(self) -> None:
        emitter = EventEmitter()
        received: list[AgentEvent] = []

        def broken(event: AgentEvent) -> None:
            raise RuntimeError("listener bug")

        emitter.subscribe(broken)
        emitter.subscribe(received.append)
        emitter.emit(AgentEvent(AgentEventType.ERROR))

        assert len(received) == 1


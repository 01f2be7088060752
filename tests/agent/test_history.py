"""Tests for ConversationHistory: window, pairing repair, rewind and pruning."""

from __future__ import annotations

import pytest

from devagent.agent.history import ConversationHistory
from devagent.llm.models import (
    Role,
    TextBlock,
    ToolInvocation,
    ToolOutcome,
    Turn,
)


def _invoke(call_id: str, text: str = "") -> Turn:
    blocks: list = [TextBlock(text=text)] if text else []
    blocks.append(ToolInvocation(id=call_id, name="read_file", arguments={"path": "a"}))
    return Turn(role=Role.AGENT, content=blocks)


def _answer(call_id: str, text: str = "contents") -> Turn:
    return Turn.outcomes([ToolOutcome(invocation_id=call_id, text=text)])


class TestAppend:
    def test_empty_turns_become_placeholders(self) -> None:
        history = ConversationHistory()
        history.append(Turn.human("   "))
        history.append(Turn(role=Role.AGENT, content=""))

        assert [t.text() for t in history.turns] == ["(no content)", "(continuing)"]
        assert not any(t.is_empty() for t in history.turns)

    def test_text_is_sanitized_on_append(self) -> None:
        history = ConversationHistory()
        history.append(Turn.human("a\udc00b"))
        assert history.turns[0].text() == "ab"

    def test_max_turns_must_allow_a_pair(self) -> None:
        with pytest.raises(ValueError):
            ConversationHistory(max_turns=1)


class TestWindow:
    def test_oldest_turns_are_dropped(self) -> None:
        history = ConversationHistory(max_turns=4)
        for i in range(6):
            history.append(Turn.human(f"h{i}") if i % 2 == 0 else Turn.agent(f"a{i}"))

        assert len(history) == 4
        assert [t.text() for t in history.turns] == ["h2", "a3", "h4", "a5"]

    def test_outcomes_never_outlive_their_invocation(self) -> None:
        history = ConversationHistory(max_turns=2)
        history.append(Turn.human("read a"))
        history.append(_invoke("c1"))
        history.append(_answer("c1"))
        history.append(Turn.agent("done"))

        assert [t.text() for t in history.turns] == ["done"]
        assert not any(t.tool_outcomes() for t in history.turns)

    def test_leading_outcome_turn_keeps_its_text(self) -> None:
        history = ConversationHistory(max_turns=2)
        history.append(_invoke("c1"))
        history.append(
            Turn(
                role=Role.HUMAN,
                content=[ToolOutcome(invocation_id="c1", text="x"), TextBlock(text="also this")],
            )
        )
        history.append(Turn.agent("ok"))

        first = history.turns[0]
        assert first.text() == "also this"
        assert not first.tool_outcomes()


class TestMaterialize:
    def test_unanswered_invocation_is_stripped(self) -> None:
        history = ConversationHistory()
        history.append(Turn.human("look"))
        history.append(_invoke("c1", text="let me look"))

        turns = history.materialize()
        assert len(turns) == 2
        assert turns[1].text() == "let me look"
        assert not turns[1].tool_invocations()

    def test_orphaned_outcome_is_stripped(self) -> None:
        history = ConversationHistory()
        history.append(_answer("ghost"))
        history.append(Turn.agent("hello"))

        turns = history.materialize()
        assert [t.role for t in turns] == [Role.AGENT]

    def test_valid_pairs_are_kept(self) -> None:
        history = ConversationHistory()
        history.append(Turn.human("read a"))
        history.append(_invoke("c1"))
        history.append(_answer("c1"))

        turns = history.materialize()
        assert turns[1].tool_invocations()[0].id == "c1"
        assert turns[2].tool_outcomes()[0].invocation_id == "c1"

    def test_materialize_returns_copies(self) -> None:
        history = ConversationHistory()
        history.append(Turn.human("hi"))
        history.materialize()[0].content = "changed"
        assert history.turns[0].text() == "hi"


class TestMarkAndRewind:
    def test_rewind_discards_later_turns(self) -> None:
        history = ConversationHistory()
        history.append(Turn.human("one"))
        mark = history.mark()
        history.append(_invoke("c1"))
        history.append(_answer("c1"))

        history.rewind(mark)
        assert [t.text() for t in history.turns] == ["one"]

    def test_rewind_survives_window_truncation(self) -> None:
        history = ConversationHistory(max_turns=4)
        history.append(Turn.human("h1"))
        history.append(Turn.agent("a1"))
        history.append(Turn.human("h2"))
        mark = history.mark()
        history.append(Turn.agent("a2"))
        history.append(Turn.human("h3"))
        history.append(Turn.agent("a3"))

        history.rewind(mark)
        assert [t.text() for t in history.turns] == ["h2"]

    def test_clear(self) -> None:
        history = ConversationHistory()
        history.append(Turn.human("hi"))
        history.clear()
        assert len(history) == 0
        assert history.materialize() == []


class TestPrune:
    def test_scaffolding_removed_and_same_role_turns_merged(self) -> None:
        history = ConversationHistory()
        history.append(Turn.human("read a"))
        history.append(_invoke("c1", text="checking"))
        history.append(_answer("c1"))
        history.append(Turn.agent("done"))

        history.prune_tool_scaffolding()

        turns = history.turns
        assert [t.role for t in turns] == [Role.HUMAN, Role.AGENT]
        assert [b.text for b in turns[1].blocks()] == ["checking", "done"]
        assert not any(t.tool_invocations() or t.tool_outcomes() for t in turns)

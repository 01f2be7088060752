"""Tests for lone-surrogate sanitization."""

from __future__ import annotations

from devagent.agent.sanitize import sanitize, sanitize_turn
from devagent.llm.models import Role, ToolInvocation, ToolOutcome, Turn


class TestSanitize:
    def test_clean_text_is_returned_unchanged(self) -> None:
        text = "plain ascii, ünïcödé and emoji \U0001f600"
        assert sanitize(text) is text

    def test_lone_high_surrogate_removed(self) -> None:
        assert sanitize("ab\ud83dcd") == "abcd"

    def test_lone_low_surrogate_removed(self) -> None:
        assert sanitize("\ude00tail") == "tail"

    def test_trailing_high_surrogate_removed(self) -> None:
        assert sanitize("end\ud800") == "end"

    def test_valid_pair_is_joined(self) -> None:
        assert sanitize("x\ud83d\ude00y") == "x\U0001f600y"

    def test_idempotent(self) -> None:
        dirty = "\udc00a\ud83d\ude00b\ud800"
        once = sanitize(dirty)
        assert sanitize(once) == once
        assert not any(0xD800 <= ord(c) <= 0xDFFF for c in once)

    def test_none_and_non_strings(self) -> None:
        assert sanitize(None) == ""
        assert sanitize(42) == "42"


class TestSanitizeTurn:
    def test_string_content_stays_a_string(self) -> None:
        turn = sanitize_turn(Turn(role=Role.HUMAN, content="hi\ud800"))
        assert turn.content == "hi"

    def test_nested_tool_arguments_are_cleaned(self) -> None:
        turn = Turn(
            role=Role.AGENT,
            content=[
                ToolInvocation(
                    id="c1",
                    name="write_file",
                    arguments={"path": "a\udc00.txt", "lines": ["x\ud800", {"k": "\udfff"}]},
                )
            ],
        )
        args = sanitize_turn(turn).tool_invocations()[0].arguments
        assert args == {"path": "a.txt", "lines": ["x", {"k": ""}]}

    def test_outcome_keeps_pairing_fields(self) -> None:
        turn = Turn.outcomes([ToolOutcome(invocation_id="c9", text="bad\ud800", is_error=True)])
        outcome = sanitize_turn(turn).tool_outcomes()[0]
        assert (outcome.invocation_id, outcome.text, outcome.is_error) == ("c9", "bad", True)

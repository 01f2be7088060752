"""Bounded, self-repairing conversation history.

:class:`ConversationHistory` is the only thing allowed to mutate the turns
of a session. It sanitizes everything written to it, never stores an empty
turn, keeps a sliding window of at most ``max_turns`` turns, and never lets
a ToolOutcome outlive the ToolInvocation it answers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from devagent.agent.sanitize import sanitize_turn
from devagent.llm.models import (
    ContentBlock,
    Role,
    TextBlock,
    ToolInvocation,
    ToolOutcome,
    Turn,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 80

_PLACEHOLDERS = {
    Role.HUMAN: "(no content)",
    Role.AGENT: "(continuing)",
}


@dataclass(frozen=True)
class HistoryMark:
    """An absolute position in the history.

    Counts every turn ever appended minus those since rewound, so it
    stays meaningful after the window drops turns off the front.
    """

    position: int


class ConversationHistory:
    """Ordered, bounded sequence of conversation turns.

    Args:
        max_turns: Sliding-window cap. Oldest turns are dropped first.
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        if max_turns < 2:
            raise ValueError(f"max_turns must be >= 2, got {max_turns}")
        self._max_turns = max_turns
        self._turns: list[Turn] = []
        self._dropped = 0

    @property
    def max_turns(self) -> int:
        return self._max_turns

    @property
    def turns(self) -> list[Turn]:
        """A shallow snapshot of the stored turns."""
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    # -----------------------------------------------------------------
    # Mutation
    # -----------------------------------------------------------------

    def append(self, turn: Turn) -> None:
        """Sanitize and store *turn*, then enforce the window.

        An empty turn is replaced by a neutral placeholder of the same
        role, since most providers reject empty messages.
        """
        clean = sanitize_turn(turn)
        if clean.is_empty():
            logger.debug("Replacing empty %s turn with placeholder", turn.role.value)
            clean = Turn(role=clean.role, content=[TextBlock(text=_PLACEHOLDERS[clean.role])])
        self._turns.append(clean)
        self.truncate_window(self._max_turns)

    def truncate_window(self, max_turns: int) -> None:
        """Drop the oldest turns until at most *max_turns* remain.

        If the new first turn carries outcomes whose invocations were just
        dropped, those outcomes go too, so a pair is always removed whole.
        """
        removed = 0
        while len(self._turns) > max_turns:
            self._turns.pop(0)
            removed += 1
        while self._turns and self._turns[0].tool_outcomes():
            head = self._turns[0]
            stripped = Turn(
                role=head.role,
                content=[b for b in head.blocks() if not isinstance(b, ToolOutcome)],
            )
            if not stripped.is_empty():
                self._turns[0] = stripped
                break
            self._turns.pop(0)
            removed += 1
        if removed:
            self._dropped += removed
            logger.info(
                "History window: dropped %d oldest turn(s), %d retained",
                removed,
                len(self._turns),
            )

    def prune_tool_scaffolding(self) -> None:
        """Remove every ToolInvocation/ToolOutcome, keeping only text.

        Turns left empty are dropped and adjacent same-role turns are
        merged, leaving a plain human-readable transcript.
        """
        pruned: list[Turn] = []
        for turn in self._turns:
            texts = [b for b in turn.blocks() if isinstance(b, TextBlock) and b.text.strip()]
            if not texts:
                continue
            if pruned and pruned[-1].role == turn.role:
                merged: list[ContentBlock] = pruned[-1].blocks() + list(texts)
                pruned[-1] = Turn(role=turn.role, content=merged)
            else:
                pruned.append(Turn(role=turn.role, content=list(texts)))
        removed = len(self._turns) - len(pruned)
        self._dropped += removed
        self._turns = pruned

    def mark(self) -> HistoryMark:
        """Return the current end of history for a later :meth:`rewind`."""
        return HistoryMark(position=self._dropped + len(self._turns))

    def rewind(self, mark: HistoryMark) -> None:
        """Discard every turn appended after *mark*."""
        keep = max(0, mark.position - self._dropped)
        if keep < len(self._turns):
            del self._turns[keep:]

    def clear(self) -> None:
        """Forget the whole conversation."""
        self._dropped += len(self._turns)
        self._turns.clear()

    # -----------------------------------------------------------------
    # Reading
    # -----------------------------------------------------------------

    def materialize(self) -> list[Turn]:
        """Return the turns to send to a provider.

        Each turn is a re-sanitized copy; empty turns are skipped.
        Unanswered invocations and orphaned outcomes are stripped so the
        result always satisfies the tool pairing rule.
        """
        turns = [t for t in (sanitize_turn(t) for t in self._turns) if not t.is_empty()]

        # Invocations must be answered by the very next turn.
        for i, turn in enumerate(turns):
            invocations = turn.tool_invocations()
            if turn.role != Role.AGENT or not invocations:
                continue
            nxt = turns[i + 1] if i + 1 < len(turns) else None
            answered = (
                {o.invocation_id for o in nxt.tool_outcomes()}
                if nxt is not None and nxt.role == Role.HUMAN
                else set()
            )
            orphaned = [inv.id for inv in invocations if inv.id not in answered]
            if orphaned:
                logger.warning("Dropping %d unanswered tool invocation(s)", len(orphaned))
                turns[i] = Turn(
                    role=turn.role,
                    content=[
                        b
                        for b in turn.blocks()
                        if not (isinstance(b, ToolInvocation) and b.id in orphaned)
                    ],
                )

        # Outcomes must answer an invocation in the preceding agent turn.
        for i, turn in enumerate(turns):
            outcomes = turn.tool_outcomes()
            if not outcomes:
                continue
            prev = turns[i - 1] if i > 0 else None
            valid = (
                {inv.id for inv in prev.tool_invocations()}
                if prev is not None and prev.role == Role.AGENT
                else set()
            )
            orphaned = [o.invocation_id for o in outcomes if o.invocation_id not in valid]
            if orphaned:
                logger.warning("Dropping %d orphaned tool outcome(s)", len(orphaned))
                turns[i] = Turn(
                    role=turn.role,
                    content=[
                        b
                        for b in turn.blocks()
                        if not (isinstance(b, ToolOutcome) and b.invocation_id in orphaned)
                    ],
                )

        return [t for t in turns if not t.is_empty()]

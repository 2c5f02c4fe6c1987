"""Conversation turns exchanged with the model during one review.

A Conversation only grows: turns are appended, never edited or removed, so
the transcript written at the end is exactly what the model saw.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from difflens_core.errors import ToolError


@dataclass(frozen=True)
class RawToolCall:
    """A tool call exactly as the model issued it.

    ``arguments`` is the JSON string from OpenAI-style APIs or the already
    decoded object from Anthropic-style APIs.
    """

    id: str
    name: str
    arguments: Union[str, dict]


@dataclass(frozen=True)
class ToolResult:
    request_id: str
    tool_name: str
    body: str | None = None
    error: ToolError | None = None

    def __post_init__(self):
        if (self.body is None) == (self.error is None):
            raise ValueError("ToolResult needs exactly one of body or error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def content(self) -> str:
        """Text sent back to the model for this call."""
        if self.error is not None:
            return self.error.render(self.tool_name)
        # Some APIs reject an empty tool result, e.g. a read past end of file.
        return self.body or "(empty result)"


@dataclass(frozen=True)
class SystemTurn:
    text: str


@dataclass(frozen=True)
class UserTurn:
    text: str


@dataclass(frozen=True)
class AssistantToolCalls:
    calls: tuple[RawToolCall, ...]
    text: str = ""  # any prose the model sent alongside the calls


@dataclass(frozen=True)
class ToolResults:
    results: tuple[ToolResult, ...]


@dataclass(frozen=True)
class AssistantFinal:
    raw_text: str


Turn = Union[SystemTurn, UserTurn, AssistantToolCalls, ToolResults, AssistantFinal]


@dataclass
class Conversation:
    _turns: list = field(default_factory=list)

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def system_text(self) -> str:
        return "\n\n".join(t.text for t in self._turns if isinstance(t, SystemTurn))

    def append(self, turn: Turn) -> None:
        if isinstance(turn, ToolResults):
            self._check_pairing(turn)
        self._turns.append(turn)

    def _check_pairing(self, turn: ToolResults) -> None:
        """Every result must answer a call from the immediately preceding assistant turn."""
        last = self._turns[-1] if self._turns else None
        if not isinstance(last, AssistantToolCalls):
            raise ValueError("Tool results must follow an assistant tool-call turn")
        issued = [c.id for c in last.calls]
        answered = [r.request_id for r in turn.results]
        if sorted(issued) != sorted(answered):
            raise ValueError(f"Tool results {answered} do not match pending calls {issued}")

    def __len__(self) -> int:
        return len(self._turns)

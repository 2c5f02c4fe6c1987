"""The tool-mediated review loop.

States:

    Start → AwaitingModel → (ExecutingTools → AwaitingModel)* → Done | Aborted

One exchange is outstanding at a time and tool calls run one by one in the
order the model issued them. The tool-call budget is checked before every
execution; once it is spent, the remaining calls of the batch are answered
with BudgetExceeded, the model gets one last exchange, and the loop aborts
whatever that exchange returns. A review therefore never takes more than
``max_tool_calls + 2`` exchanges.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from difflens_core.config import Budget
from difflens_core.conversation import (
    AssistantFinal,
    AssistantToolCalls,
    Conversation,
    RawToolCall,
    SystemTurn,
    ToolResult,
    ToolResults,
    UserTurn,
)
from difflens_core.errors import BudgetExceeded, InvalidArguments, MalformedVerdict, RemoteUnavailable
from difflens_core.providers.base import BaseProvider, FinalText, ModelReply
from difflens_core.tools.requests import decode_tool_call, describe, execute
from difflens_core.tools.schemas import TOOL_SCHEMAS
from difflens_core.verdict import Verdict, parse_verdict

logger = logging.getLogger(__name__)


class AbortReason(str, enum.Enum):
    TOOL_BUDGET_EXCEEDED = "ToolBudgetExceeded"
    MALFORMED_VERDICT = "MalformedVerdict"
    REMOTE_UNAVAILABLE = "RemoteUnavailable"


@dataclass(frozen=True)
class ToolCallRecord:
    request_id: str
    summary: str
    status: str  # "ok" or the ToolError kind


@dataclass(frozen=True)
class Done:
    verdict: Verdict
    conversation: Conversation
    exchanges: int
    tool_calls: tuple[ToolCallRecord, ...] = ()


@dataclass(frozen=True)
class Aborted:
    reason: AbortReason
    detail: str
    conversation: Conversation
    exchanges: int
    tool_calls: tuple[ToolCallRecord, ...] = ()
    final_text: str | None = None  # what the model said after the budget ran out, if anything


Outcome = Union[Done, Aborted]


@dataclass
class ReviewLoop:
    provider: BaseProvider
    root: Path
    budget: Budget
    tools: list[dict] = field(default_factory=lambda: list(TOOL_SCHEMAS))

    def __post_init__(self):
        self.root = Path(self.root)
        self.conversation = Conversation()
        self.exchanges = 0
        self.tool_calls_used = 0
        self.budget_exhausted = False
        self._records: list[ToolCallRecord] = []

    @property
    def max_exchanges(self) -> int:
        return self.budget.max_tool_calls + 2

    def run(self, system_text: str, user_text: str) -> Outcome:
        """Drive the conversation to a Done or Aborted outcome. Single use."""
        if len(self.conversation):
            raise RuntimeError("ReviewLoop.run() may only be called once per instance")

        self.conversation.append(SystemTurn(system_text))
        self.conversation.append(UserTurn(user_text))

        while True:
            try:
                reply = self._exchange()
            except RemoteUnavailable as e:
                return self._aborted(AbortReason.REMOTE_UNAVAILABLE, str(e))

            if self.budget_exhausted:
                return self._finish_over_budget(reply)

            if isinstance(reply, FinalText) or not reply.calls:
                text = reply.text
                self.conversation.append(AssistantFinal(text))
                try:
                    verdict = parse_verdict(text)
                except MalformedVerdict as e:
                    return self._aborted(AbortReason.MALFORMED_VERDICT, f"{e}\n{e.raw_text}")
                logger.info("Review done after %d exchange(s), %d tool call(s)", self.exchanges, self.tool_calls_used)
                return Done(
                    verdict=verdict,
                    conversation=self.conversation,
                    exchanges=self.exchanges,
                    tool_calls=tuple(self._records),
                )

            self.conversation.append(AssistantToolCalls(calls=reply.calls, text=reply.text))
            results = self._execute_batch(reply.calls)
            self.conversation.append(ToolResults(results=tuple(results)))

    # ------------------------------------------------------------------ #
    # States                                                               #
    # ------------------------------------------------------------------ #

    def _exchange(self) -> ModelReply:
        self.exchanges += 1
        logger.info("Exchange %d/%d", self.exchanges, self.max_exchanges)
        return self.provider.send_turn(self.conversation, self.tools)

    def _execute_batch(self, calls: tuple[RawToolCall, ...]) -> list[ToolResult]:
        results = []
        seen_ids: set[str] = set()
        for call in calls:
            if self.budget_exhausted or self.tool_calls_used + 1 > self.budget.max_tool_calls:
                self.budget_exhausted = True
                error = BudgetExceeded(
                    f"Tool budget of {self.budget.max_tool_calls} call(s) is spent; this call was not executed. "
                    "No further tool calls will run. Give your final answer now."
                )
                results.append(ToolResult(request_id=call.id, tool_name=call.name, error=error))
                self._records.append(ToolCallRecord(call.id, f"{call.name} (not executed)", error.kind))
                continue

            self.tool_calls_used += 1
            result, summary = self._run_call(call, seen_ids)
            seen_ids.add(call.id)
            results.append(result)
            self._records.append(ToolCallRecord(call.id, summary, "ok" if result.ok else result.error.kind))

        if self.budget_exhausted:
            logger.warning("Tool budget of %d exhausted; one final exchange remains", self.budget.max_tool_calls)
        return results

    def _run_call(self, call: RawToolCall, seen_ids: set[str]) -> tuple[ToolResult, str]:
        try:
            if call.id in seen_ids:
                raise InvalidArguments(f"Duplicate tool call id {call.id!r} in one batch")
            request = decode_tool_call(call)
        except InvalidArguments as e:
            logger.info("Rejected %s call %s: %s", call.name, call.id, e)
            return ToolResult(request_id=call.id, tool_name=call.name, error=e), f"{call.name} (invalid arguments)"
        summary = describe(request)
        logger.info("Tool call %d/%d: %s", self.tool_calls_used, self.budget.max_tool_calls, summary)
        return execute(request, self.root, self.budget), summary

    def _finish_over_budget(self, reply: ModelReply) -> Aborted:
        final_text = None
        if isinstance(reply, FinalText):
            final_text = reply.text
            self.conversation.append(AssistantFinal(reply.text))
        else:
            # Recorded for the transcript; these calls are never executed or answered.
            self.conversation.append(AssistantToolCalls(calls=reply.calls, text=reply.text))
            final_text = reply.text or None
        return self._aborted(
            AbortReason.TOOL_BUDGET_EXCEEDED,
            f"Exceeded the budget of {self.budget.max_tool_calls} tool call(s)",
            final_text=final_text,
        )

    def _aborted(self, reason: AbortReason, detail: str, final_text: str | None = None) -> Aborted:
        logger.warning("Review aborted (%s) after %d exchange(s)", reason.value, self.exchanges)
        return Aborted(
            reason=reason,
            detail=detail,
            conversation=self.conversation,
            exchanges=self.exchanges,
            tool_calls=tuple(self._records),
            final_text=final_text,
        )

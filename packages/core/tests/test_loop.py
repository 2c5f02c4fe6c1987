"""Tests for the tool-mediated review loop.

The model is replaced by _ScriptedProvider, a BaseProvider subclass whose
_call_api hands out pre-recorded replies. Going through the real send_turn
keeps the exception mapping to RemoteUnavailable under test as well.
"""

import json
from itertools import count

import pytest

from difflens_core.config import Budget
from difflens_core.conversation import AssistantFinal, AssistantToolCalls, RawToolCall, ToolResults
from difflens_core.loop import Aborted, AbortReason, Done, ReviewLoop
from difflens_core.providers.base import BaseProvider, FinalText, ToolCalls

VERDICT = json.dumps({"reasoning": "Read the change.", "substantiveComments": False, "summary": "n/a"})


class _ScriptedProvider(BaseProvider):
    def __init__(self, replies):
        self._replies = list(replies)
        self.calls = 0

    def _call_api(self, conversation, tools):
        self.calls += 1
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class _EndlessToolProvider(BaseProvider):
    """Never gives a final answer; asks for one more file read every time."""

    def __init__(self):
        self._ids = count(1)
        self.calls = 0

    def _call_api(self, conversation, tools):
        self.calls += 1
        return ToolCalls(calls=(read_call(f"c{next(self._ids)}", "lib.txt"),))


def read_call(call_id, path, **extra):
    return RawToolCall(id=call_id, name="read_file", arguments=json.dumps({"path": path, **extra}))


def search_call(call_id, regex):
    return RawToolCall(id=call_id, name="search_files", arguments={"regex": regex})


@pytest.fixture
def repo(tmp_path):
    (tmp_path / "lib.txt").write_text("".join(f"line {i}\n" for i in range(1, 31)))
    return tmp_path


def run(provider, root, budget=None):
    loop = ReviewLoop(provider=provider, root=root, budget=budget or Budget())
    return loop.run("system", "user")


def tool_results(outcome):
    return [t for t in outcome.conversation.turns if isinstance(t, ToolResults)]


class TestDone:
    def test_immediate_verdict(self, repo):
        outcome = run(_ScriptedProvider([FinalText(VERDICT)]), repo)
        assert isinstance(outcome, Done)
        assert outcome.exchanges == 1
        assert outcome.verdict.summary == "n/a"
        assert outcome.tool_calls == ()

    def test_empty_tool_call_list_is_a_final_answer(self, repo):
        outcome = run(_ScriptedProvider([ToolCalls(calls=(), text=VERDICT)]), repo)
        assert isinstance(outcome, Done)

    def test_read_then_search_then_verdict(self, repo):
        provider = _ScriptedProvider(
            [
                ToolCalls(calls=(read_call("c1", "lib.txt", offset=1, limit=20),)),
                ToolCalls(calls=(search_call("c2", "TODO"),)),
                FinalText(VERDICT),
            ]
        )
        outcome = run(provider, repo)

        assert isinstance(outcome, Done)
        assert outcome.exchanges == 3
        first, second = tool_results(outcome)
        read_lines = first.results[0].content.split("\n")
        assert len(read_lines) == 20
        assert read_lines[0] == "1: line 1"
        assert read_lines[-1] == "20: line 20"
        assert second.results[0].content == "0/0 matches shown"
        assert [r.status for r in outcome.tool_calls] == ["ok", "ok"]

    def test_conversation_alternates_calls_and_results(self, repo):
        provider = _ScriptedProvider(
            [ToolCalls(calls=(read_call("c1", "lib.txt"), read_call("c2", "lib.txt", limit=1))), FinalText(VERDICT)]
        )
        outcome = run(provider, repo)
        kinds = [type(t).__name__ for t in outcome.conversation.turns]
        assert kinds == ["SystemTurn", "UserTurn", "AssistantToolCalls", "ToolResults", "AssistantFinal"]
        results = tool_results(outcome)[0].results
        assert [r.request_id for r in results] == ["c1", "c2"]


class TestToolErrors:
    def test_tool_error_reported_to_model_and_loop_continues(self, repo):
        provider = _ScriptedProvider([ToolCalls(calls=(read_call("c1", "../etc/passwd"),)), FinalText(VERDICT)])
        outcome = run(provider, repo)
        assert isinstance(outcome, Done)
        result = tool_results(outcome)[0].results[0]
        assert result.content.startswith("ERROR (PathEscape) in read_file:")
        assert outcome.tool_calls[0].status == "PathEscape"

    def test_unknown_tool_is_invalid_arguments(self, repo):
        bogus = RawToolCall(id="c1", name="write_file", arguments={"path": "x"})
        outcome = run(_ScriptedProvider([ToolCalls(calls=(bogus,)), FinalText(VERDICT)]), repo)
        assert tool_results(outcome)[0].results[0].error.kind == "InvalidArguments"

    def test_duplicate_call_id_rejected(self, repo):
        calls = (read_call("c1", "lib.txt", limit=1), read_call("c1", "lib.txt", limit=2))
        outcome = run(_ScriptedProvider([ToolCalls(calls=calls), FinalText(VERDICT)]), repo)
        first, second = tool_results(outcome)[0].results
        assert first.ok
        assert second.error.kind == "InvalidArguments"


class TestAborted:
    def test_malformed_verdict(self, repo):
        outcome = run(_ScriptedProvider([FinalText("LGTM!")]), repo)
        assert isinstance(outcome, Aborted)
        assert outcome.reason is AbortReason.MALFORMED_VERDICT
        assert "LGTM!" in outcome.detail
        assert isinstance(outcome.conversation.turns[-1], AssistantFinal)

    def test_remote_failure(self, repo):
        outcome = run(_ScriptedProvider([ConnectionError("connection reset")]), repo)
        assert isinstance(outcome, Aborted)
        assert outcome.reason is AbortReason.REMOTE_UNAVAILABLE
        assert "connection reset" in outcome.detail
        assert outcome.exchanges == 1

    def test_remote_failure_after_tool_calls(self, repo):
        provider = _ScriptedProvider([ToolCalls(calls=(read_call("c1", "lib.txt"),)), TimeoutError("timed out")])
        outcome = run(provider, repo)
        assert outcome.reason is AbortReason.REMOTE_UNAVAILABLE
        assert outcome.exchanges == 2
        assert len(outcome.tool_calls) == 1


class TestBudget:
    def test_ninth_call_in_one_batch_not_executed(self, repo):
        calls = tuple(read_call(f"c{i}", "lib.txt", limit=1) for i in range(1, 10))
        provider = _ScriptedProvider([ToolCalls(calls=calls), FinalText(VERDICT)])
        outcome = run(provider, repo, Budget(max_tool_calls=8))

        assert isinstance(outcome, Aborted)
        assert outcome.reason is AbortReason.TOOL_BUDGET_EXCEEDED
        results = tool_results(outcome)[0].results
        assert all(r.ok for r in results[:8])
        assert results[8].error.kind == "BudgetExceeded"
        assert "Give your final answer now" in results[8].content
        assert outcome.exchanges == 2

    def test_ninth_call_across_exchanges(self, repo):
        replies = [ToolCalls(calls=(read_call(f"c{i}", "lib.txt", limit=1),)) for i in range(1, 10)]
        provider = _ScriptedProvider(replies + [FinalText(VERDICT)])
        outcome = run(provider, repo, Budget(max_tool_calls=8))

        assert outcome.reason is AbortReason.TOOL_BUDGET_EXCEEDED
        assert outcome.exchanges == 10
        assert provider.calls == 10
        statuses = [r.status for r in outcome.tool_calls]
        assert statuses == ["ok"] * 8 + ["BudgetExceeded"]

    def test_valid_verdict_after_budget_still_aborts(self, repo):
        provider = _ScriptedProvider([ToolCalls(calls=(read_call("c1", "lib.txt"),)), FinalText(VERDICT)])
        outcome = run(provider, repo, Budget(max_tool_calls=0))
        assert isinstance(outcome, Aborted)
        assert outcome.reason is AbortReason.TOOL_BUDGET_EXCEEDED
        assert outcome.final_text == VERDICT

    def test_tool_calls_after_budget_recorded_but_not_run(self, repo):
        provider = _ScriptedProvider(
            [
                ToolCalls(calls=(read_call("c1", "lib.txt"),)),
                ToolCalls(calls=(read_call("c2", "lib.txt"),), text="One more look"),
            ]
        )
        outcome = run(provider, repo, Budget(max_tool_calls=0))
        assert outcome.reason is AbortReason.TOOL_BUDGET_EXCEEDED
        assert isinstance(outcome.conversation.turns[-1], AssistantToolCalls)
        assert len(tool_results(outcome)) == 1
        assert outcome.final_text == "One more look"

    def test_remote_failure_on_final_exchange(self, repo):
        provider = _ScriptedProvider([ToolCalls(calls=(read_call("c1", "lib.txt"),)), OSError("down")])
        outcome = run(provider, repo, Budget(max_tool_calls=0))
        assert outcome.reason is AbortReason.REMOTE_UNAVAILABLE

    @pytest.mark.parametrize("max_tool_calls", [0, 1, 3, 8])
    def test_exchanges_bounded(self, repo, max_tool_calls):
        provider = _EndlessToolProvider()
        outcome = run(provider, repo, Budget(max_tool_calls=max_tool_calls))
        assert outcome.reason is AbortReason.TOOL_BUDGET_EXCEEDED
        assert outcome.exchanges == max_tool_calls + 2
        assert provider.calls == max_tool_calls + 2
        executed = [r for r in outcome.tool_calls if r.status == "ok"]
        assert len(executed) == max_tool_calls


def test_loop_is_single_use(repo):
    loop = ReviewLoop(provider=_ScriptedProvider([FinalText(VERDICT)]), root=repo, budget=Budget())
    loop.run("system", "user")
    with pytest.raises(RuntimeError):
        loop.run("system", "user")


def test_provider_sees_system_and_user_turns_first(repo):
    seen = []

    class _Recording(_ScriptedProvider):
        def _call_api(self, conversation, tools):
            seen.append((conversation.turns, [t["name"] for t in tools]))
            return super()._call_api(conversation, tools)

    run(_Recording([FinalText(VERDICT)]), repo)
    turns, tool_names = seen[0]
    assert [t.text for t in turns] == ["system", "user"]
    assert tool_names == ["read_file", "search_files"]

"""Tests for the CLI entry point."""

import json
from pathlib import Path

import yaml
from click.testing import CliRunner

from difflens_cli.cli import main
from difflens_core.config import Budget
from difflens_core.conversation import RawToolCall
from difflens_core.errors import GitUnavailable, NoMergeBase
from difflens_core.git.change_set import ChangeSet
from difflens_core.loop import ReviewLoop
from difflens_core.providers.base import BaseProvider, FinalText, ToolCalls
from difflens_core.reviewer import ReviewResult

VERDICT = json.dumps({"reasoning": "Looked at the diff.", "substantiveComments": True, "summary": "- Fix `walk`"})


def make_change_set(files=("src/lib.rs",)):
    return ChangeSet(
        diff_text="+fn walk() {}\n" if files else "",
        changed_files=tuple(files),
        head_ref="c" * 40,
        merge_base_ref="a" * 40,
        branch_name="feature",
        root=Path("."),
        repo_name="myproject",
    )


class StubProvider(BaseProvider):
    def __init__(self, replies):
        self._replies = list(replies)

    def _call_api(self, conversation, tools):
        return self._replies.pop(0)


def make_result(root, replies, max_tool_calls=8):
    loop = ReviewLoop(provider=StubProvider(replies), root=root, budget=Budget(max_tool_calls=max_tool_calls))
    return ReviewResult(change_set=make_change_set(), outcome=loop.run("sys", "user"), reviewed_at="now")


def invoke(tmp_path, *args, **kwargs):
    return CliRunner().invoke(main, ["--config", str(tmp_path / "absent.yml"), *args], **kwargs)


class TestReviewCommand:
    def test_empty_change_set(self, tmp_path, mocker):
        mocker.patch(
            "difflens_cli.commands.review.run_review",
            return_value=ReviewResult(change_set=make_change_set(files=())),
        )
        result = invoke(tmp_path, "review")
        assert result.exit_code == 0
        assert "No changes to review against main" in result.output

    def test_verdict_printed_as_json(self, tmp_path, mocker):
        mocker.patch(
            "difflens_cli.commands.review.run_review",
            return_value=make_result(tmp_path, [FinalText(VERDICT)]),
        )
        result = invoke(tmp_path, "review")
        assert result.exit_code == 0
        assert '"substantiveComments": true' in result.output
        assert '"summary": "- Fix `walk`"' in result.output

    def test_aborted_review_exits_2(self, tmp_path, mocker):
        call = RawToolCall(id="c1", name="read_file", arguments={"path": "x"})
        mocker.patch(
            "difflens_cli.commands.review.run_review",
            return_value=make_result(tmp_path, [ToolCalls(calls=(call,)), FinalText(VERDICT)], max_tool_calls=0),
        )
        result = invoke(tmp_path, "review")
        assert result.exit_code == 2
        assert "ToolBudgetExceeded" in result.output
        assert "substantiveComments" in result.output  # model's last message is shown

    def test_malformed_verdict_exits_2(self, tmp_path, mocker):
        mocker.patch(
            "difflens_cli.commands.review.run_review",
            return_value=make_result(tmp_path, [FinalText("Looks good to me")]),
        )
        result = invoke(tmp_path, "review")
        assert result.exit_code == 2
        assert "MalformedVerdict" in result.output
        assert "Looks good to me" in result.output

    def test_no_merge_base_exits_1(self, tmp_path, mocker):
        mocker.patch("difflens_cli.commands.review.run_review", side_effect=NoMergeBase("main"))
        result = invoke(tmp_path, "review")
        assert result.exit_code == 1
        assert "No merge base" in result.output

    def test_git_unavailable_exits_1(self, tmp_path, mocker):
        mocker.patch("difflens_cli.commands.review.run_review", side_effect=GitUnavailable("not a git repository"))
        result = invoke(tmp_path, "review")
        assert result.exit_code == 1
        assert "not a git repository" in result.output

    def test_missing_api_key_exits_1(self, tmp_path, mocker, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        mocker.patch("difflens_core.reviewer.collect", return_value=make_change_set())
        result = invoke(tmp_path, "review", "--model", "openai")
        assert result.exit_code == 1
        assert "OPENAI_API_KEY" in result.output

    def test_cli_options_override_config(self, tmp_path, mocker):
        cfg = tmp_path / ".difflens.yml"
        cfg.write_text("default_branch: develop\nmax_tool_calls: 5\n")
        run_review = mocker.patch(
            "difflens_cli.commands.review.run_review",
            return_value=ReviewResult(change_set=make_change_set(files=())),
        )
        result = CliRunner().invoke(
            main,
            [
                "--config",
                str(cfg),
                "review",
                "--repo-root",
                str(tmp_path),
                "--max-tool-calls",
                "3",
                "--prompt",
                "Focus on errors",
            ],
        )
        assert result.exit_code == 0
        repo_root, config = run_review.call_args.args
        assert repo_root == str(tmp_path)
        assert config["max_tool_calls"] == 3
        assert config["default_branch"] == "develop"
        assert run_review.call_args.kwargs["additional_prompt"] == "Focus on errors"

    def test_negative_tool_budget_rejected(self, tmp_path):
        result = invoke(tmp_path, "review", "--max-tool-calls", "-1")
        assert result.exit_code != 0

    def test_transcript_written(self, tmp_path, mocker):
        mocker.patch(
            "difflens_cli.commands.review.run_review",
            return_value=make_result(tmp_path, [FinalText(VERDICT)]),
        )
        transcript = tmp_path / "out" / "transcript.json"
        transcript.parent.mkdir()
        result = invoke(tmp_path, "review", "--transcript", str(transcript))
        assert result.exit_code == 0
        assert json.loads(transcript.read_text())["status"] == "done"

    def test_tool_calls_table_shown(self, tmp_path, mocker):
        (tmp_path / "a.txt").write_text("x\n")
        call = RawToolCall(id="c1", name="read_file", arguments={"path": "a.txt"})
        mocker.patch(
            "difflens_cli.commands.review.run_review",
            return_value=make_result(tmp_path, [ToolCalls(calls=(call,)), FinalText(VERDICT)]),
        )
        result = invoke(tmp_path, "review")
        assert result.exit_code == 0
        assert "read_file a.txt" in result.output


class TestInitCommand:
    def test_writes_config(self, tmp_path, mocker):
        mocker.patch("difflens_cli.commands.init._detect_default_branch", return_value=None)
        path = tmp_path / ".difflens.yml"
        result = CliRunner().invoke(main, ["init", "--path", str(path)], input="anthropic\ndevelop\n4\n")
        assert result.exit_code == 0
        assert yaml.safe_load(path.read_text()) == {
            "model": "anthropic",
            "default_branch": "develop",
            "max_tool_calls": 4,
        }
        assert "ANTHROPIC_API_KEY" in result.output

    def test_preserves_existing_keys(self, tmp_path, mocker):
        mocker.patch("difflens_cli.commands.init._detect_default_branch", return_value="trunk")
        path = tmp_path / ".difflens.yml"
        path.write_text("guidelines: docs/review.md\nmodel: anthropic\n")
        result = CliRunner().invoke(main, ["init", "--path", str(path)], input="openai\n\n\n")
        assert result.exit_code == 0
        data = yaml.safe_load(path.read_text())
        assert data["guidelines"] == "docs/review.md"
        assert data["model"] == "openai"
        assert data["default_branch"] == "trunk"
        assert data["max_tool_calls"] == 8

    def test_defaults_to_global_config_path(self, tmp_path, mocker):
        mocker.patch("difflens_cli.commands.init._detect_default_branch", return_value=None)
        path = tmp_path / "custom.yml"
        result = CliRunner().invoke(main, ["--config", str(path), "init"], input="\n\n\n")
        assert result.exit_code == 0
        assert yaml.safe_load(path.read_text())["model"] == "openai"


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "difflens" in result.output

"""Core review orchestration: change set → prompts → review loop."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console

from difflens_core.config import Budget, load_guidelines
from difflens_core.conversation import (
    AssistantFinal,
    AssistantToolCalls,
    SystemTurn,
    ToolResults,
    UserTurn,
)
from difflens_core.errors import ConfigError
from difflens_core.git.change_set import ChangeSet, collect
from difflens_core.loop import Aborted, Outcome, ReviewLoop
from difflens_core.prompt import build_prompts
from difflens_core.providers.anthropic import AnthropicProvider
from difflens_core.providers.base import BaseProvider
from difflens_core.providers.openai import OpenAIProvider

# stdout carries only the verdict; progress goes to stderr.
console = Console(stderr=True)
logger = logging.getLogger(__name__)


@dataclass
class ReviewResult:
    """What run_review hands back to the CLI.

    ``outcome`` is None when the change set was empty and no review ran.
    """

    change_set: ChangeSet
    outcome: Outcome | None = None
    reviewed_at: str = ""

    @property
    def skipped(self) -> bool:
        return self.outcome is None


def get_provider(config: dict) -> BaseProvider:
    model = config["model"]
    if model == "openai":
        if not config.get("openai_api_key"):
            raise ConfigError("OPENAI_API_KEY environment variable is not set.")
        return OpenAIProvider(
            api_key=config["openai_api_key"],
            model=config.get("openai_model"),
            base_url=config.get("openai_base_url"),
            temperature=config.get("temperature"),
            max_tokens=config.get("max_tokens", 4096),
            timeout=config.get("request_timeout", 120),
        )
    if model == "anthropic":
        if not config.get("anthropic_api_key"):
            raise ConfigError("ANTHROPIC_API_KEY environment variable is not set.")
        return AnthropicProvider(
            api_key=config["anthropic_api_key"],
            model=config.get("anthropic_model"),
            temperature=config.get("temperature"),
            max_tokens=config.get("max_tokens", 4096),
            timeout=config.get("request_timeout", 120),
        )
    raise ConfigError(f"Unknown model provider: {model!r}. Choose 'openai' or 'anthropic'.")


def run_review(
    repo_root: str | Path,
    config: dict,
    additional_prompt: str | None = None,
    provider: BaseProvider | None = None,
) -> ReviewResult:
    """Run the full local review pipeline and return a ReviewResult.

    An empty change set returns early: no prompt is built, no provider is
    created and nothing is sent to the model. GitUnavailable, NoMergeBase and
    ConfigError propagate to the caller; loop failures come back as an
    Aborted outcome.
    """
    repo_root = Path(repo_root)
    default_branch = config.get("default_branch", "main")
    budget = Budget.from_config(config)

    change_set = collect(repo_root, default_branch)
    if change_set.is_empty:
        logger.info("No changes against %s; skipping review", default_branch)
        return ReviewResult(change_set=change_set)

    policy = load_guidelines(config)
    system_text, user_text = build_prompts(change_set, policy, additional_prompt)

    if provider is None:
        provider = get_provider(config)

    console.print(
        f"[cyan]Reviewing {len(change_set.changed_files)} changed file(s) "
        f"against {default_branch} ({change_set.merge_base_ref[:7]} → {change_set.head_ref[:7]})[/cyan]"
    )
    # Tools resolve paths against the work tree top level, where the diff paths are rooted.
    loop = ReviewLoop(provider=provider, root=change_set.root, budget=budget)
    outcome = loop.run(system_text, user_text)

    return ReviewResult(
        change_set=change_set,
        outcome=outcome,
        reviewed_at=datetime.now(timezone.utc).isoformat(),
    )


def _turn_to_dict(turn) -> dict:
    if isinstance(turn, SystemTurn):
        return {"type": "system", "text": turn.text}
    if isinstance(turn, UserTurn):
        return {"type": "user", "text": turn.text}
    if isinstance(turn, AssistantToolCalls):
        return {
            "type": "assistant_tool_calls",
            "text": turn.text,
            "calls": [{"id": c.id, "name": c.name, "arguments": c.arguments} for c in turn.calls],
        }
    if isinstance(turn, ToolResults):
        return {
            "type": "tool_results",
            "results": [
                {
                    "id": r.request_id,
                    "tool": r.tool_name,
                    "ok": r.ok,
                    "error": r.error.kind if r.error is not None else None,
                    "content": r.content,
                }
                for r in turn.results
            ],
        }
    if isinstance(turn, AssistantFinal):
        return {"type": "assistant_final", "text": turn.raw_text}
    raise TypeError(f"Unknown turn type: {type(turn).__name__}")


def write_transcript(path: str | Path, result: ReviewResult) -> None:
    """Write the full conversation and tool-call log as JSON for auditing.

    The file is output only; difflens never reads it back.
    """
    change_set = result.change_set
    outcome = result.outcome
    payload: dict = {
        "reviewed_at": result.reviewed_at,
        "repo": change_set.repo_name,
        "remote_url": change_set.remote_url,
        "branch": change_set.branch_name,
        "head": change_set.head_ref,
        "merge_base": change_set.merge_base_ref,
        "changed_files": list(change_set.changed_files),
    }
    if outcome is not None:
        payload["status"] = "aborted" if isinstance(outcome, Aborted) else "done"
        payload["exchanges"] = outcome.exchanges
        payload["tool_calls"] = [
            {"id": r.request_id, "summary": r.summary, "status": r.status} for r in outcome.tool_calls
        ]
        if isinstance(outcome, Aborted):
            payload["abort_reason"] = outcome.reason.value
            payload["abort_detail"] = outcome.detail
        else:
            payload["verdict"] = outcome.verdict.to_dict()
        payload["conversation"] = [_turn_to_dict(t) for t in outcome.conversation.turns]

    Path(path).write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.debug("Transcript written to %s", path)

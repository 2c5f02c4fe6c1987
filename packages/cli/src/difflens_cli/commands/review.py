"""review command: run the tool-assisted review on the local change set."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from difflens_core.config import load_config
from difflens_core.errors import ChangeSetError, ConfigError
from difflens_core.loop import Aborted, ToolCallRecord
from difflens_core.reviewer import run_review, write_transcript

# Diagnostics and tables go to stderr; the verdict JSON is the only stdout payload.
console = Console(stderr=True)

EXIT_ERROR = 1
EXIT_ABORTED = 2


def print_tool_calls(records: tuple[ToolCallRecord, ...]) -> None:
    if not records:
        console.print("[dim]No tool calls were made.[/dim]")
        return
    table = Table(title="Tool calls", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=3)
    table.add_column("Call")
    table.add_column("Result", width=18)
    for i, record in enumerate(records, 1):
        style = "green" if record.status == "ok" else "red"
        table.add_row(str(i), escape(record.summary), f"[{style}]{record.status}[/{style}]")
    console.print(table)


@click.command("review")
@click.option(
    "--repo-root",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Root of the git work tree to review.",
)
@click.option("--default-branch", default=None, help="Branch to diff against. Overrides config file.")
@click.option(
    "--model",
    type=click.Choice(["openai", "anthropic"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option("--prompt", "additional_prompt", default=None, help="Extra instructions appended to the review request.")
@click.option(
    "--guidelines",
    "guidelines_path",
    default=None,
    help="Path to a Markdown reviewer policy. Overrides config file.",
)
@click.option(
    "--max-tool-calls",
    type=click.IntRange(min=0),
    default=None,
    help="Maximum number of tool calls the model may make. Overrides config file.",
)
@click.option(
    "--transcript",
    "transcript_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Write the full conversation and tool-call log to this JSON file.",
)
@click.pass_context
def review_cmd(
    ctx,
    repo_root: str,
    default_branch: str | None,
    model: str | None,
    additional_prompt: str | None,
    guidelines_path: str | None,
    max_tool_calls: int | None,
    transcript_path: str | None,
):
    """Review the changes on this branch since it diverged from the default branch.

    Sends the diff and the list of touched files to the model, which may
    inspect the repository through read_file and search_files before giving
    its verdict. The verdict is printed to stdout as JSON.

    \b
    Exit status:
      0  verdict printed, or nothing to review
      1  git, configuration or credential problem
      2  review aborted (tool budget spent, malformed verdict, API failure)

    \b
    Required environment variables:
      OPENAI_API_KEY       Required when using --model openai
      ANTHROPIC_API_KEY    Required when using --model anthropic
    """
    config_path = ctx.obj.get("config_path", ".difflens.yml") if ctx.obj else ".difflens.yml"

    try:
        config = load_config(
            config_path,
            cli_overrides={
                "model": model,
                "default_branch": default_branch,
                "guidelines": guidelines_path,
                "max_tool_calls": max_tool_calls,
            },
        )
        result = run_review(repo_root, config, additional_prompt=additional_prompt)
    except (ChangeSetError, ConfigError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        ctx.exit(EXIT_ERROR)

    if result.skipped:
        console.print(f"[yellow]No changes to review against {config['default_branch']}.[/yellow]")
        return

    if transcript_path:
        write_transcript(transcript_path, result)
        console.print(f"[dim]Transcript written to {transcript_path}[/dim]")

    outcome = result.outcome
    print_tool_calls(outcome.tool_calls)

    if isinstance(outcome, Aborted):
        console.print(f"[red]Review aborted ({outcome.reason.value}) after {outcome.exchanges} exchange(s).[/red]")
        console.print(outcome.detail, markup=False, highlight=False)
        if outcome.final_text:
            console.print("[dim]Model's last message:[/dim]")
            console.print(outcome.final_text, markup=False, highlight=False)
        ctx.exit(EXIT_ABORTED)

    click.echo(outcome.verdict.to_json())

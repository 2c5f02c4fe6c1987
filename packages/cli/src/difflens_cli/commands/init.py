"""init command: interactive setup wizard writing .difflens.yml."""

from __future__ import annotations

import subprocess
from pathlib import Path

import click
import yaml
from rich.console import Console

from difflens_core.config import DEFAULT_CONFIG

console = Console(stderr=True)


@click.command("init")
@click.option(
    "--path",
    "config_path",
    default=None,
    help="Where to write the config file. Defaults to the global --config path.",
)
@click.pass_context
def init_cmd(ctx, config_path: str | None):
    """Set up difflens for this repository.

    Asks for the model provider, the branch to diff against and the review
    budget, then writes them to .difflens.yml. Existing keys are preserved.
    """
    if config_path is None:
        config_path = ctx.obj.get("config_path", ".difflens.yml") if ctx.obj else ".difflens.yml"

    console.print("\n[bold cyan]difflens init[/bold cyan] setup wizard\n")

    provider = click.prompt(
        "AI provider",
        type=click.Choice(["openai", "anthropic"]),
        default=DEFAULT_CONFIG["model"],
    )
    api_key_env = "ANTHROPIC_API_KEY" if provider == "anthropic" else "OPENAI_API_KEY"

    detected = _detect_default_branch()
    if detected:
        console.print(f"[dim]Detected default branch: {detected}[/dim]")
    default_branch = click.prompt("Branch to review against", default=detected or DEFAULT_CONFIG["default_branch"])

    max_tool_calls = click.prompt(
        "Maximum tool calls per review",
        type=click.IntRange(min=0),
        default=DEFAULT_CONFIG["max_tool_calls"],
    )

    config = {
        "model": provider,
        "default_branch": default_branch,
        "max_tool_calls": max_tool_calls,
    }
    _write_config(Path(config_path), config)
    console.print(f"[green]Wrote {config_path}[/green]")

    console.print(f"\n[yellow]Remember to export [bold]{api_key_env}[/bold] before running a review.[/yellow]")
    console.print("Run a review with: [bold]difflens review[/bold]")


def _detect_default_branch() -> str | None:
    """Read the default branch from the origin remote's HEAD, if it is known locally."""
    try:
        result = subprocess.run(
            ["git", "symbolic-ref", "--short", "refs/remotes/origin/HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    # origin/main → main
    ref = result.stdout.strip()
    return ref.split("/", 1)[-1] if ref else None


def _write_config(path: Path, config: dict) -> None:
    """Write or update the config file, preserving any existing keys."""
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))

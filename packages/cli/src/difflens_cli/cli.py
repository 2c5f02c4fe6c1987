"""CLI entry point for difflens.

Commands:
  review   review the pending change set of a local repository
  init     interactive setup wizard writing .difflens.yml
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from difflens_cli.commands.init import init_cmd
from difflens_cli.commands.review import review_cmd


def _configure_logging(verbose: bool) -> None:
    """Route log records to stderr through rich; stdout is reserved for the verdict."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    # SDK transport chatter is only useful when debugging the SDK itself.
    for noisy in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("difflens"),
    prog_name="difflens",
)
@click.option(
    "--config",
    "config_path",
    default=".difflens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="DIFFLENS_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every exchange and tool call to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Tool-assisted AI review of your branch's pending changes."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(review_cmd)
main.add_command(init_cmd)

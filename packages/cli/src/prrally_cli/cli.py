"""CLI entry point for prrally.

Commands:
  rally    run the reviewer/reviewee loop on a pull request
  post     publish a saved (pending) review to GitHub
  pending  list saved reviews waiting to be posted
  history  show the session state and review/fix trail of a PR
  clean    remove saved session data
  init     write a starter .prrally.yml and prompt templates
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prrally_cli.commands.clean import clean_cmd
from prrally_cli.commands.history import history_cmd
from prrally_cli.commands.init import init_cmd
from prrally_cli.commands.pending import pending_cmd
from prrally_cli.commands.post import post_cmd
from prrally_cli.commands.rally import rally_cmd

console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prrally"),
    prog_name="prrally",
)
@click.option(
    "--config",
    "config_path",
    default=".prrally.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRRALLY_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Let an AI reviewer and an AI reviewee iterate on a GitHub PR."""
    from prrally_core.config import load_config
    from prrally_cli.auth import resolve_github_token
    from prrally_store.pending import PendingReviewStore
    from prrally_store.session import SessionStore

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve once so every subcommand sees the same token.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    ctx.obj["config"] = config
    ctx.obj["session_store"] = SessionStore(config.get("rally_dir"))
    ctx.obj["pending_store"] = PendingReviewStore(config.get("rally_dir"))


main.add_command(rally_cmd)
main.add_command(post_cmd)
main.add_command(pending_cmd)
main.add_command(history_cmd)
main.add_command(clean_cmd)
main.add_command(init_cmd)

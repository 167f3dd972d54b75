"""clean command: remove saved rally data."""

from __future__ import annotations

import click
from rich.console import Console

console = Console()


@click.command("clean")
@click.option("--repo", default=None, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask before removing all sessions.")
@click.pass_context
def clean_cmd(ctx, repo: str | None, pr_number: int | None, yes: bool):
    """Remove rally session data.

    With --repo and --pr, removes that PR's session, history and pending
    review. Without them, removes everything under the rally directory.
    """
    if (repo is None) != (pr_number is None):
        raise click.UsageError("--repo and --pr must be given together.")

    store = ctx.obj["session_store"]
    if repo is None and not yes:
        if not click.confirm(f"Remove all rally data under {store.root}?", default=False):
            console.print("Cancelled.")
            return

    try:
        store.cleanup(repo, pr_number)
    except OSError as e:
        raise click.ClickException(f"Could not remove rally data: {e}") from e

    target = f"{repo}#{pr_number}" if repo else str(store.root)
    console.print(f"[green]Cleaned rally data for {target}.[/green]")

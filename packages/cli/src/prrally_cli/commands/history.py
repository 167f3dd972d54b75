"""history command: show a PR's rally session and review/fix trail."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_TYPE_STYLE = {"review": "cyan", "fix": "magenta"}


def _outcome(entry) -> str:
    data = entry.data
    if entry.entry_type.value == "review":
        comments = len(data.get("comments") or [])
        return f"{data.get('action', '?')} ({comments} comment(s))"
    return data.get("status", "?")


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int):
    """Show the saved rally state and every review and fix recorded for a PR."""
    store = ctx.obj["session_store"]

    session = store.read_session(repo, pr_number)
    if session is None:
        console.print(f"[yellow]No rally session found for {repo}#{pr_number}.[/yellow]")
        return

    console.print(
        f"[bold]{repo}#{pr_number}[/bold]  state: [bold]{session.state.value}[/bold]  "
        f"iteration: {session.iteration}  updated: {session.updated_at[:19].replace('T', ' ')}"
    )

    entries = store.read_history(repo, pr_number)
    if not entries:
        console.print("[yellow]No history recorded.[/yellow]")
        return

    table = Table(title=f"Rally History: {repo}#{pr_number}", show_header=True, header_style="bold cyan")
    table.add_column("Iter", justify="right", width=5)
    table.add_column("Type", width=8)
    table.add_column("Outcome", width=28)
    table.add_column("Summary", max_width=60)
    table.add_column("Recorded At", width=20)

    for entry in entries:
        style = _TYPE_STYLE.get(entry.entry_type.value, "white")
        summary = entry.data.get("summary") or ""
        table.add_row(
            str(entry.iteration),
            f"[{style}]{entry.entry_type.value}[/{style}]",
            _outcome(entry),
            summary[:60],
            entry.recorded_at[:19].replace("T", " "),
        )

    console.print(table)

"""pending command: list saved reviews waiting to be posted."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("pending")
@click.pass_context
def pending_cmd(ctx):
    """List pending reviews, newest first."""
    summaries = ctx.obj["pending_store"].find_all()
    if not summaries:
        console.print("[yellow]No pending reviews found.[/yellow]")
        return

    table = Table(title="Pending Reviews", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=3)
    table.add_column("Repository")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Comments", justify="right", width=10)
    table.add_column("Saved At", width=20)
    table.add_column("File", overflow="fold")

    for i, s in enumerate(summaries, 1):
        table.add_row(
            str(i),
            s.repo,
            f"#{s.pr_number}",
            str(s.comment_count),
            s.created_at[:19].replace("T", " "),
            str(s.path),
        )

    console.print(table)

"""post command: publish a saved review to GitHub."""

from __future__ import annotations

from pathlib import Path

import click
from github import GithubException
from rich.console import Console

from prrally_cli.auth import require_github_token
from prrally_core.errors import RallyError
from prrally_core.gh.pull_request import GitHubReviewClient
from prrally_core.models import ReviewerOutput
from prrally_core.poster import PostOptions, post_review
from prrally_store.errors import StoreError

console = Console()


def _describe(summary) -> str:
    return (
        f"{summary.repo}#{summary.pr_number} "
        f"({summary.comment_count} comment(s), saved {summary.created_at[:19].replace('T', ' ')})"
    )


def pick_pending_review(pending_store) -> Path | None:
    """Choose a pending review interactively. Returns None if the user declines."""
    summaries = pending_store.find_all()
    if not summaries:
        raise click.ClickException("No pending reviews found. Run `prrally rally --dry-run` to create one.")

    if len(summaries) == 1:
        only = summaries[0]
        if not click.confirm(f"Post pending review for {_describe(only)}?", default=True):
            return None
        return only.path

    console.print("\nPending reviews:")
    for i, summary in enumerate(summaries, 1):
        console.print(f"  [bold]{i}[/bold]. {_describe(summary)}")
    choice = click.prompt("\nSelect a review to post", type=click.IntRange(1, len(summaries)))
    return summaries[choice - 1].path


@click.command("post")
@click.argument("file", required=False, type=click.Path(dir_okay=False))
@click.option("--no-header", is_flag=True, help="Do not prefix posted text with the AI attribution header.")
@click.option("--no-summary", is_flag=True, help="Post inline comments only, without the summary review.")
@click.option("--keep", is_flag=True, help="Keep the pending review file after a successful post.")
@click.pass_context
def post_cmd(ctx, file: str | None, no_header: bool, no_summary: bool, keep: bool):
    """Post a pending review saved by `prrally rally --dry-run`.

    Without FILE, lists the pending reviews found under the rally directory
    and asks which one to post.
    """
    config = ctx.obj["config"]
    pending_store = ctx.obj["pending_store"]
    token = require_github_token(config)

    path = Path(file) if file else pick_pending_review(pending_store)
    if path is None:
        console.print("Cancelled.")
        return

    try:
        pending = pending_store.read(path)
        review = ReviewerOutput.from_dict(pending.review)
    except OSError as e:
        raise click.ClickException(f"Cannot read {path}: {e}") from e
    except (StoreError, RallyError) as e:
        raise click.ClickException(f"Invalid pending review {path}: {e}") from e

    options = PostOptions(
        include_header=config.get("post_header", True) and not no_header,
        post_summary=config.get("post_summary", True) and not no_summary,
    )
    try:
        result = post_review(
            GitHubReviewClient(token), pending.repo, pending.pr_number, pending.head_sha, review, options
        )
    except (GithubException, OSError) as e:
        raise click.ClickException(f"Posting failed: {e}") from e

    action = result.action.value if result.action else "inline comments only"
    console.print(
        f"[green]Posted to {pending.repo}#{pending.pr_number}: {action}, "
        f"{result.posted_comments} comment(s).[/green]"
    )
    if result.failed_comments:
        console.print(f"[yellow]Failed to post: {', '.join(result.failed_comments)}[/yellow]")

    if not keep:
        pending_store.delete(path)
        console.print(f"[dim]Removed {path}[/dim]")

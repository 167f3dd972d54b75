"""rally command: run the reviewer/reviewee loop on a pull request."""

from __future__ import annotations

import asyncio
import logging

import click
from github import GithubException
from rich.console import Console

from prrally_cli.auth import require_github_token
from prrally_core import events
from prrally_core.errors import RallyError
from prrally_core.events import EventSink
from prrally_core.gh.pull_request import GitHubReviewClient, build_context, get_pull, get_pull_requests, get_repo
from prrally_core.orchestrator import (
    AbortedResult,
    ApprovedResult,
    ErrorResult,
    MaxIterationsResult,
    Orchestrator,
    fix_outcome,
)
from prrally_core.poster import PostOptions, post_review
from prrally_store.errors import StoreError
from prrally_store.models import PendingReview

console = Console()
logger = logging.getLogger(__name__)

_ACTION_STYLE = {
    "approve": "green",
    "comment": "yellow",
    "request_changes": "red",
}


def render_event(event) -> None:
    """Print one rally event. Agent text is only shown at debug verbosity."""
    if isinstance(event, events.IterationStarted):
        console.rule(f"Iteration {event.iteration}")
    elif isinstance(event, events.StateChanged):
        console.print(f"[dim]state → {event.state.value}[/dim]")
    elif isinstance(event, events.ReviewCompleted):
        action = event.review.action.value
        style = _ACTION_STYLE.get(action, "white")
        console.print(
            f"[bold]Reviewer:[/bold] [{style}]{action}[/{style}] "
            f"({len(event.review.comments)} comment(s), {len(event.review.blocking_issues)} blocking)"
        )
        if event.review.summary:
            console.print(f"  {event.review.summary}")
    elif isinstance(event, events.FixCompleted):
        console.print(f"[bold]Reviewee:[/bold] {event.fix.status.value}")
        if event.fix.summary:
            console.print(f"  {event.fix.summary}")
        for path in event.fix.files_modified:
            console.print(f"  [dim]modified {path}[/dim]")
    elif isinstance(event, events.ClarificationNeeded):
        console.print(f"[yellow]Reviewee asks:[/yellow] {event.question}")
    elif isinstance(event, events.PermissionNeeded):
        console.print(f"[yellow]Reviewee requests permission:[/yellow] {event.action}")
        if event.reason:
            console.print(f"  [dim]{event.reason}[/dim]")
    elif isinstance(event, events.Approved):
        console.print("[bold green]Approved.[/bold green]")
    elif isinstance(event, events.Error):
        console.print(f"[bold red]Reviewee error:[/bold red] {event.message}")
    elif isinstance(event, events.Log):
        console.print(f"[dim]{event.message}[/dim]")
    elif isinstance(event, events.AgentToolUse):
        console.print(f"[dim]  ↳ {event.tool_name}: {event.input_summary}[/dim]")
    elif isinstance(event, events.AgentToolResult):
        console.print(f"[dim]  ↲ {event.tool_name}: {event.result_summary}[/dim]")
    elif isinstance(event, events.AgentThinking):
        logger.debug("Agent thinking: %s", event.content)
    elif isinstance(event, events.AgentText):
        logger.debug("Agent response: %s", event.text)


async def run_with_events(coro, sink: EventSink):
    """Await `coro`, rendering sink events as they arrive."""
    task = asyncio.ensure_future(coro)
    while not task.done():
        await asyncio.wait({task}, timeout=sink.POLL_INTERVAL)
        for event in sink.drain():
            render_event(event)
    return task.result()


async def _answer(orchestrator: Orchestrator, sink: EventSink, pause: AbortedResult):
    """Ask the human about `pause` and resume the reviewee. Returns None if they decline."""
    if pause.question is not None:
        answer = click.prompt("Answer for the reviewee (empty to stop)", default="", show_default=False)
        if not answer.strip():
            return None
        return await run_with_events(orchestrator.continue_with_clarification(answer), sink)
    if pause.permission is not None:
        if not click.confirm(f"Allow the reviewee to: {pause.permission.action}?", default=False):
            return None
        return await run_with_events(orchestrator.continue_with_permission(pause.permission.action), sink)
    return None


async def _drive(orchestrator: Orchestrator, sink: EventSink, interactive: bool):
    """Run the rally, resuming through clarification and permission pauses when a human answers."""
    result = await run_with_events(orchestrator.run(), sink)
    while isinstance(result, AbortedResult) and interactive:
        fix = await _answer(orchestrator, sink, result)
        if fix is None:
            return result
        outcome = fix_outcome(fix, result.iteration)
        if outcome is None:
            result = await run_with_events(orchestrator.run(), sink)
        else:
            result = outcome
    return result


async def _rally(repo: str, pr_number: int, config: dict, context, session_store, interactive: bool):
    sink = EventSink()
    orchestrator = Orchestrator(repo, pr_number, config, event_sink=sink, store=session_store)
    orchestrator.set_context(context)
    try:
        result = await _drive(orchestrator, sink, interactive)
    finally:
        sink.close()
    return orchestrator, result


def save_pending(pending_store, repo: str, pr, review) -> str:
    pending = PendingReview(
        repo=repo,
        pr_number=pr.number,
        head_sha=pr.head.sha,
        base_branch=pr.base.ref,
        review=review.to_dict(),
    )
    try:
        return str(pending_store.write(pending))
    except StoreError as e:
        raise click.ClickException(f"Could not save pending review: {e}") from e


@click.command("rally")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option("--max-iterations", type=int, default=None, help="Iteration budget. Overrides config file.")
@click.option("--timeout", "timeout_secs", type=int, default=None, help="Per-agent-call timeout in seconds.")
@click.option(
    "--working-dir",
    type=click.Path(file_okay=False, exists=True),
    default=None,
    help="Local checkout the reviewee works in.",
)
@click.option("--dry-run", is_flag=True, help="Save the final review as pending instead of posting it.")
@click.option("--no-header", is_flag=True, help="Do not prefix posted text with the AI attribution header.")
@click.option("--no-summary", is_flag=True, help="Post inline comments only, without the summary review.")
@click.option("--yes", "-y", is_flag=True, help="Post without asking for confirmation.")
@click.option(
    "--interactive/--no-interactive",
    default=True,
    show_default=True,
    help="Prompt for answers when the reviewee asks a question or needs permission.",
)
@click.pass_context
def rally_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    max_iterations: int | None,
    timeout_secs: int | None,
    working_dir: str | None,
    dry_run: bool,
    no_header: bool,
    no_summary: bool,
    yes: bool,
    interactive: bool,
):
    """Run an AI reviewer and an AI reviewee against each other on a PR.

    The reviewer reviews the diff, the reviewee addresses the feedback, and
    the loop repeats until the reviewer approves or the iteration budget is
    spent. The final review is then posted to GitHub (or saved with --dry-run).

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    When an agent uses anthropic (the default)
      OPENAI_API_KEY       When an agent uses openai
    """
    config = dict(ctx.obj["config"])
    for key, value in (("max_iterations", max_iterations), ("timeout_secs", timeout_secs)):
        if value is not None:
            config[key] = value
    token = require_github_token(config)

    try:
        this_repo = get_repo(repo, token=token)
        if pr_number is None:
            prs = list(get_pull_requests(this_repo))
            if not prs:
                console.print("[yellow]No open pull requests found.[/yellow]")
                return
            console.print("\nOpen pull requests:")
            for pr in prs:
                console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
            pr_number = click.prompt("\nEnter the pull request number", type=int)
        pr = get_pull(this_repo, pr_number)
        context = build_context(pr, repo, working_dir)
    except GithubException as e:
        raise click.ClickException(f"GitHub request failed: {e}") from e

    try:
        orchestrator, result = asyncio.run(
            _rally(repo, pr_number, config, context, ctx.obj["session_store"], interactive)
        )
    except (RallyError, StoreError) as e:
        raise click.ClickException(str(e)) from e

    if isinstance(result, ErrorResult):
        console.print(f"[red]Rally stopped at iteration {result.iteration}: {result.error}[/red]")
        ctx.exit(1)
    if isinstance(result, AbortedResult):
        console.print(f"[yellow]Rally paused at iteration {result.iteration}. {result.reason}[/yellow]")
        return

    if isinstance(result, ApprovedResult):
        console.print(f"\n[green]Approved after {result.iteration} iteration(s).[/green]")
    elif isinstance(result, MaxIterationsResult):
        console.print(f"\n[yellow]No approval after {result.iteration} iteration(s).[/yellow]")

    review = orchestrator.last_review
    if review is None:
        return

    pending_store = ctx.obj["pending_store"]
    if dry_run:
        path = save_pending(pending_store, repo, pr, review)
        console.print(f"[bold]Dry run: review saved to {path}[/bold]")
        console.print(f"Post it later with: [bold]prrally post {path}[/bold]")
        return

    if not yes and not click.confirm(
        f"Post {review.action.value} review with {len(review.comments)} comment(s) to {repo}#{pr_number}?",
        default=True,
    ):
        path = save_pending(pending_store, repo, pr, review)
        console.print(f"Review saved to {path}")
        return

    options = PostOptions(
        include_header=config.get("post_header", True) and not no_header,
        post_summary=config.get("post_summary", True) and not no_summary,
    )
    try:
        posted = post_review(GitHubReviewClient(token), repo, pr_number, pr.head.sha, review, options)
    except (GithubException, OSError) as e:
        path = save_pending(pending_store, repo, pr, review)
        raise click.ClickException(
            f"Posting failed: {e}\nReview saved to {path}; retry with `prrally post {path}`."
        ) from e

    action = posted.action.value if posted.action else "inline comments only"
    console.print(f"\n[green]Review posted: {action}. {posted.posted_comments} comment(s).[/green]")
    if posted.failed_comments:
        console.print(f"[yellow]{len(posted.failed_comments)} comment(s) could not be posted.[/yellow]")

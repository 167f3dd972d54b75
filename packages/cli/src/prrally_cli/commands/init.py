"""init command: write a starter configuration and prompt templates.

Creates:
  .prrally.yml            agent selection, limits and prompt file paths
  .prrally/reviewer.md    custom reviewer instructions
  .prrally/reviewee.md    custom reviewee instructions

Existing files are left alone unless --force is given.
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

console = Console()

CONFIG_FILENAME = ".prrally.yml"
PROMPT_DIR = ".prrally"

_REVIEWER_TEMPLATE = """\
<!--
Custom instructions for the reviewer agent. They are placed before the
built-in review prompt on the first iteration. Delete this file (or its
entry in .prrally.yml) to use the defaults only.
-->

- Follow the conventions already used in this repository.
- Treat missing tests for new behaviour as a blocking issue.
"""

_REVIEWEE_TEMPLATE = """\
<!--
Custom instructions for the reviewee agent. They are placed before the
built-in fix prompt on every iteration.
-->

- Keep changes minimal and focused on the review feedback.
- Ask for clarification instead of guessing when feedback is ambiguous.
"""


def _default_config() -> dict:
    return {
        "reviewer": {"agent": "anthropic", "model": None},
        "reviewee": {"agent": "anthropic", "model": None},
        "reviewer_prompt_file": f"{PROMPT_DIR}/reviewer.md",
        "reviewee_prompt_file": f"{PROMPT_DIR}/reviewee.md",
        "max_iterations": 10,
        "timeout_secs": 600,
        "post_header": True,
        "post_summary": True,
    }


def _write(path: Path, content: str, force: bool) -> bool:
    if path.exists() and not force:
        console.print(f"[yellow]Skipped {path} (already exists; use --force to overwrite)[/yellow]")
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    console.print(f"[green]Created {path}[/green]")
    return True


@click.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing files.")
def init_cmd(force: bool):
    """Set up prrally in the current directory."""
    _write(Path(CONFIG_FILENAME), yaml.safe_dump(_default_config(), sort_keys=False), force)
    _write(Path(PROMPT_DIR) / "reviewer.md", _REVIEWER_TEMPLATE, force)
    _write(Path(PROMPT_DIR) / "reviewee.md", _REVIEWEE_TEMPLATE, force)

    console.print("\nRun a rally with: [bold]prrally rally --repo <owner/name> --pr <number>[/bold]")

"""Persisted record types.

Decoupled from prrally_core: review and fix payloads are kept as plain JSON
dicts here, and the core layer converts them to and from its own models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RallyState(str, Enum):
    INITIALIZING = "initializing"
    REVIEWER_REVIEWING = "reviewer_reviewing"
    REVIEWEE_FIX = "reviewee_fix"
    WAITING_FOR_CLARIFICATION = "waiting_for_clarification"
    WAITING_FOR_PERMISSION = "waiting_for_permission"
    COMPLETED = "completed"
    ERROR = "error"


class HistoryEntryType(str, Enum):
    REVIEW = "review"
    FIX = "fix"


@dataclass
class RallySession:
    """Mutable orchestration record for one (repo, PR) pair.

    Only the orchestrator owning the run mutates it; the iteration counter
    only ever goes up.
    """

    repo: str
    pr_number: int
    iteration: int = 0
    state: RallyState = RallyState.INITIALIZING
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)

    def increment_iteration(self) -> int:
        self.iteration += 1
        self.updated_at = utcnow_iso()
        return self.iteration

    def update_state(self, state: RallyState) -> None:
        self.state = state
        self.updated_at = utcnow_iso()

    def to_dict(self) -> dict:
        return {
            "repo": self.repo,
            "pr_number": self.pr_number,
            "iteration": self.iteration,
            "state": self.state.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> RallySession:
        return cls(
            repo=d["repo"],
            pr_number=int(d["pr_number"]),
            iteration=int(d.get("iteration", 0)),
            state=RallyState(d.get("state", RallyState.INITIALIZING.value)),
            created_at=d.get("created_at", ""),
            updated_at=d.get("updated_at", ""),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """One iteration's reviewer verdict or reviewee fix, never rewritten."""

    iteration: int
    entry_type: HistoryEntryType
    data: dict
    recorded_at: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "type": self.entry_type.value,
            "recorded_at": self.recorded_at,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, d: dict) -> HistoryEntry:
        return cls(
            iteration=int(d["iteration"]),
            entry_type=HistoryEntryType(d["type"]),
            data=d.get("data") or {},
            recorded_at=d.get("recorded_at", ""),
        )


@dataclass
class PendingReview:
    """A finished reviewer verdict waiting to be posted.

    `review` is the serialized ReviewerOutput:
    {action, summary, comments: [{path, line, body, severity}], blocking_issues}.
    """

    repo: str
    pr_number: int
    head_sha: str
    base_branch: str
    review: dict
    created_at: str = field(default_factory=utcnow_iso)
    version: int = 1

    @property
    def comment_count(self) -> int:
        return len(self.review.get("comments") or [])

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "repo": self.repo,
            "pr_number": self.pr_number,
            "head_sha": self.head_sha,
            "base_branch": self.base_branch,
            "created_at": self.created_at,
            "review": self.review,
        }


@dataclass(frozen=True)
class PendingReviewSummary:
    """Enough about a pending review for a human to pick it from a list."""

    repo: str
    pr_number: int
    comment_count: int
    created_at: str
    path: Path

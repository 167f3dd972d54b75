"""PendingReviewStore: completed-but-unposted reviewer verdicts.

One file per (repo, PR), overwritten on each new snapshot and published
atomically, so `prrally post` can run while a rally is still writing.
Discovery across all sessions is best-effort: anything that cannot be read
as a current-version pending review is left out of the listing.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from prrally_store.base import BaseFileStore, atomic_write_text
from prrally_store.errors import PendingReviewError, PendingReviewParseError, UnsupportedVersionError
from prrally_store.models import PendingReview, PendingReviewSummary

logger = logging.getLogger(__name__)

CURRENT_VERSION = 1
PENDING_REVIEW_FILENAME = "pending_review.json"

_REQUIRED_KEYS = ("repo", "pr_number", "head_sha", "base_branch", "created_at", "review")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created_at_key(summary: PendingReviewSummary) -> datetime:
    try:
        ts = datetime.fromisoformat(summary.created_at.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class PendingReviewStore(BaseFileStore):
    def path_for(self, repo: str, pr_number: int) -> Path:
        return self.rally_dir(repo, pr_number) / PENDING_REVIEW_FILENAME

    def write(self, pending: PendingReview) -> Path:
        """Serialize pending and atomically publish it. Returns the file path."""
        path = self.path_for(pending.repo, pending.pr_number)
        payload = pending.to_dict()
        payload["version"] = CURRENT_VERSION
        atomic_write_text(path, json.dumps(payload, indent=2))
        logger.debug("Wrote pending review for %s#%d to %s", pending.repo, pending.pr_number, path)
        return path

    def read(self, path: str | Path) -> PendingReview:
        """Load a pending review.

        Raises OSError if the file cannot be read, PendingReviewParseError if
        it is not a pending review, and UnsupportedVersionError if it was
        written by a different format version. Never returns a partial object.
        """
        with open(path, "rb") as f:
            raw = f.read()
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PendingReviewParseError(f"Failed to parse pending review file {path}: {e}") from e
        if not isinstance(data, dict):
            raise PendingReviewParseError(f"Pending review file {path} does not contain a JSON object")

        version = data.get("version")
        # bool is an int subclass; true must not pass as version 1
        if type(version) is not int or version != CURRENT_VERSION:
            raise UnsupportedVersionError(version, CURRENT_VERSION)

        missing = [k for k in _REQUIRED_KEYS if k not in data]
        if missing:
            raise PendingReviewParseError(f"Pending review file {path} is missing: {', '.join(missing)}")
        review = data["review"]
        if not isinstance(review, dict) or not isinstance(review.get("comments", []), list):
            raise PendingReviewParseError(f"Pending review file {path} has a malformed review")

        try:
            return PendingReview(
                version=version,
                repo=str(data["repo"]),
                pr_number=int(data["pr_number"]),
                head_sha=str(data["head_sha"]),
                base_branch=str(data["base_branch"]),
                created_at=str(data["created_at"]),
                review=review,
            )
        except (TypeError, ValueError) as e:
            raise PendingReviewParseError(f"Pending review file {path} has invalid fields: {e}") from e

    def find_all(self) -> list[PendingReviewSummary]:
        """Scan every session directory for pending reviews, newest first."""
        if not self.root.is_dir():
            return []

        summaries = []
        for path in self.root.glob(f"*/*/{PENDING_REVIEW_FILENAME}"):
            try:
                pending = self.read(path)
            except (OSError, PendingReviewError) as e:
                logger.debug("Skipping pending review %s: %s", path, e)
                continue
            summaries.append(
                PendingReviewSummary(
                    repo=pending.repo,
                    pr_number=pending.pr_number,
                    comment_count=pending.comment_count,
                    created_at=pending.created_at,
                    path=path,
                )
            )

        summaries.sort(key=_created_at_key, reverse=True)
        return summaries

    def delete(self, path: str | Path) -> None:
        Path(path).unlink(missing_ok=True)

"""SessionStore: session snapshots and the append-only history trail.

The orchestrator is the only writer for a given (repo, PR) during a run.
Every write either completes durably or raises PersistenceError; there is
no silent degrade path because a resumed process trusts what is on disk.
"""

from __future__ import annotations

import json
import logging
import os
import shutil

from prrally_store.base import BaseFileStore, atomic_write_text
from prrally_store.errors import PersistenceError
from prrally_store.models import HistoryEntry, HistoryEntryType, RallySession

logger = logging.getLogger(__name__)

SESSION_FILENAME = "session.json"
HISTORY_FILENAME = "history.jsonl"


class SessionStore(BaseFileStore):
    def create_session(self, repo: str, pr_number: int) -> RallySession:
        """Return a fresh in-memory session. Nothing touches disk until write_session()."""
        return RallySession(repo=repo, pr_number=pr_number)

    def write_session(self, session: RallySession) -> None:
        """Overwrite the session snapshot for the session's (repo, PR)."""
        path = self.rally_dir(session.repo, session.pr_number) / SESSION_FILENAME
        content = json.dumps(session.to_dict(), indent=2)
        atomic_write_text(path, content)
        logger.debug(
            "Wrote session %s#%d: iteration=%d state=%s",
            session.repo,
            session.pr_number,
            session.iteration,
            session.state.value,
        )

    def read_session(self, repo: str, pr_number: int) -> RallySession | None:
        path = self.rally_dir(repo, pr_number) / SESSION_FILENAME
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return RallySession.from_dict(json.load(f))

    def write_history_entry(
        self,
        repo: str,
        pr_number: int,
        iteration: int,
        entry_type: HistoryEntryType,
        data: dict,
    ) -> HistoryEntry:
        """Append one record to the PR's history trail.

        Lines are only ever appended, so earlier iterations are never
        overwritten and file order is write order.
        """
        entry = HistoryEntry(iteration=iteration, entry_type=entry_type, data=data)
        directory = self.rally_dir(repo, pr_number)
        line = json.dumps(entry.to_dict()) + "\n"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with open(directory / HISTORY_FILENAME, "a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise PersistenceError(f"Failed to append history entry for {repo}#{pr_number}: {e}") from e
        return entry

    def read_history(self, repo: str, pr_number: int) -> list[HistoryEntry]:
        """Return history entries in the order they were written.

        A torn trailing line (crash mid-append) is skipped with a warning.
        """
        path = self.rally_dir(repo, pr_number) / HISTORY_FILENAME
        if not path.exists():
            return []
        entries = []
        with open(path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    entries.append(HistoryEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.warning("Skipping unreadable history line %d in %s: %s", lineno, path, e)
        return entries

    def cleanup(self, repo: str | None = None, pr_number: int | None = None) -> None:
        """Remove one PR's session data, or every session when no PR is given."""
        if repo is not None and pr_number is not None:
            target = self.rally_dir(repo, pr_number)
        else:
            target = self.root
        if target.exists():
            shutil.rmtree(target)
            logger.info("Removed rally data at %s", target)

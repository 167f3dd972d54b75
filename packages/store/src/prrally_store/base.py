"""Shared file-store plumbing.

Both the session store and the pending-review store keep their files under
the same per-PR directory, so the path mapping and the atomic publish live
here and are inherited by each concrete store.

Layout::

    <root>/<percent-encoded repo>/<pr number>/
        session.json
        history.jsonl
        pending_review.json
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import quote

from prrally_store.errors import PersistenceError

logger = logging.getLogger(__name__)


def default_rally_root() -> Path:
    cache_home = os.environ.get("XDG_CACHE_HOME")
    base = Path(cache_home) if cache_home else Path.home() / ".cache"
    return base / "prrally" / "rally"


def rally_dir(root: Path, repo: str, pr_number: int) -> Path:
    """Map (repo, PR) to its session directory.

    Percent-encoding every reserved character (including "/") is injective,
    so "a/b_c" and "a_b/c" land in different directories, and the mapping
    depends only on its inputs.
    """
    return Path(root) / quote(repo, safe="") / str(pr_number)


def atomic_write_text(path: Path, content: str) -> None:
    """Publish content at path so readers see either the old or the new file.

    Writes a temp file in the destination directory, fsyncs it, then
    os.replace()s it into place. The temp file is removed if anything fails.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
    except OSError as e:
        raise PersistenceError(f"Failed to prepare {path}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise PersistenceError(f"Failed to write {path}: {e}") from e


class BaseFileStore:
    """Root-directory bookkeeping shared by the concrete stores."""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root).expanduser() if root else default_rally_root()

    @property
    def root(self) -> Path:
        return self._root

    def rally_dir(self, repo: str, pr_number: int) -> Path:
        return rally_dir(self._root, repo, pr_number)

"""Tests for SessionStore and the shared path mapping / atomic write helpers."""

from __future__ import annotations

import json
import os

import pytest

from prrally_store.base import atomic_write_text, default_rally_root, rally_dir
from prrally_store.errors import PersistenceError
from prrally_store.models import HistoryEntryType, RallySession, RallyState
from prrally_store.session import HISTORY_FILENAME, SESSION_FILENAME, SessionStore

# ---------------------------------------------------------------------------
# Path mapping
# ---------------------------------------------------------------------------


class TestRallyDir:
    def test_is_deterministic(self, tmp_path):
        assert rally_dir(tmp_path, "owner/repo", 7) == rally_dir(tmp_path, "owner/repo", 7)

    def test_distinct_repos_never_collide(self, tmp_path):
        """Replacing '/' with '_' would map both of these to the same directory."""
        assert rally_dir(tmp_path, "a/b_c", 1) != rally_dir(tmp_path, "a_b/c", 1)

    def test_distinct_prs_never_collide(self, tmp_path):
        assert rally_dir(tmp_path, "owner/repo", 1) != rally_dir(tmp_path, "owner/repo", 11)

    def test_stays_one_level_below_root(self, tmp_path):
        path = rally_dir(tmp_path, "owner/repo", 3)
        assert path.parent.parent == tmp_path
        assert path.name == "3"

    def test_default_root_honours_xdg_cache_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
        assert default_rally_root() == tmp_path / "prrally" / "rally"


class TestAtomicWrite:
    def test_writes_content(self, tmp_path):
        path = tmp_path / "sub" / "file.json"
        atomic_write_text(path, '{"a": 1}')
        assert json.loads(path.read_text()) == {"a": 1}

    def test_replaces_existing_file(self, tmp_path):
        path = tmp_path / "file.json"
        path.write_text("old")
        atomic_write_text(path, "new")
        assert path.read_text() == "new"

    def test_leaves_no_temp_files(self, tmp_path):
        atomic_write_text(tmp_path / "file.json", "x")
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]

    def test_failed_replace_keeps_old_file_and_cleans_up(self, tmp_path, mocker):
        path = tmp_path / "file.json"
        path.write_text("old")
        mocker.patch("prrally_store.base.os.replace", side_effect=OSError("disk full"))

        with pytest.raises(PersistenceError, match="disk full"):
            atomic_write_text(path, "new")

        assert path.read_text() == "old"
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------


class TestSessionStore:
    def test_create_session_does_not_touch_disk(self, tmp_path):
        store = SessionStore(tmp_path)
        session = store.create_session("owner/repo", 1)
        assert session.iteration == 0
        assert session.state is RallyState.INITIALIZING
        assert list(tmp_path.iterdir()) == []

    def test_write_and_read_session(self, tmp_path):
        store = SessionStore(tmp_path)
        session = store.create_session("owner/repo", 1)
        session.increment_iteration()
        session.update_state(RallyState.REVIEWEE_FIX)
        store.write_session(session)

        loaded = store.read_session("owner/repo", 1)
        assert loaded == session

    def test_write_session_overwrites_snapshot(self, tmp_path):
        store = SessionStore(tmp_path)
        session = store.create_session("owner/repo", 1)
        store.write_session(session)
        session.update_state(RallyState.COMPLETED)
        store.write_session(session)

        data = json.loads((store.rally_dir("owner/repo", 1) / SESSION_FILENAME).read_text())
        assert data["state"] == "completed"

    def test_read_session_missing_returns_none(self, tmp_path):
        assert SessionStore(tmp_path).read_session("owner/repo", 1) is None

    def test_write_session_failure_raises_persistence_error(self, tmp_path):
        blocker = tmp_path / "root"
        blocker.write_text("not a directory")
        store = SessionStore(blocker)

        with pytest.raises(PersistenceError):
            store.write_session(RallySession(repo="owner/repo", pr_number=1))


class TestHistory:
    def test_entries_are_appended_in_order(self, tmp_path):
        store = SessionStore(tmp_path)
        store.write_history_entry("owner/repo", 1, 1, HistoryEntryType.REVIEW, {"action": "request_changes"})
        store.write_history_entry("owner/repo", 1, 1, HistoryEntryType.FIX, {"status": "completed"})
        store.write_history_entry("owner/repo", 1, 2, HistoryEntryType.REVIEW, {"action": "approve"})

        entries = store.read_history("owner/repo", 1)
        assert [(e.iteration, e.entry_type) for e in entries] == [
            (1, HistoryEntryType.REVIEW),
            (1, HistoryEntryType.FIX),
            (2, HistoryEntryType.REVIEW),
        ]
        assert entries[2].data == {"action": "approve"}

    def test_new_session_does_not_overwrite_old_entries(self, tmp_path):
        store = SessionStore(tmp_path)
        store.write_history_entry("owner/repo", 1, 1, HistoryEntryType.REVIEW, {"run": "first"})
        store.write_session(store.create_session("owner/repo", 1))
        store.write_history_entry("owner/repo", 1, 1, HistoryEntryType.REVIEW, {"run": "second"})

        assert [e.data["run"] for e in store.read_history("owner/repo", 1)] == ["first", "second"]

    def test_line_format(self, tmp_path):
        store = SessionStore(tmp_path)
        store.write_history_entry("owner/repo", 1, 3, HistoryEntryType.FIX, {"status": "error"})

        line = (store.rally_dir("owner/repo", 1) / HISTORY_FILENAME).read_text().strip()
        record = json.loads(line)
        assert record["iteration"] == 3
        assert record["type"] == "fix"
        assert record["data"] == {"status": "error"}
        assert "recorded_at" in record

    def test_torn_trailing_line_is_skipped(self, tmp_path):
        store = SessionStore(tmp_path)
        store.write_history_entry("owner/repo", 1, 1, HistoryEntryType.REVIEW, {})
        with open(store.rally_dir("owner/repo", 1) / HISTORY_FILENAME, "a") as f:
            f.write('{"iteration": 2, "ty')

        assert len(store.read_history("owner/repo", 1)) == 1

    def test_read_history_missing_returns_empty(self, tmp_path):
        assert SessionStore(tmp_path).read_history("owner/repo", 1) == []

    def test_append_failure_raises_persistence_error(self, tmp_path, mocker):
        store = SessionStore(tmp_path)
        mocker.patch("prrally_store.session.os.fsync", side_effect=OSError("io error"))

        with pytest.raises(PersistenceError, match="io error"):
            store.write_history_entry("owner/repo", 1, 1, HistoryEntryType.REVIEW, {})


class TestCleanup:
    def test_removes_single_pr(self, tmp_path):
        store = SessionStore(tmp_path)
        store.write_session(store.create_session("owner/repo", 1))
        store.write_session(store.create_session("owner/repo", 2))

        store.cleanup("owner/repo", 1)

        assert store.read_session("owner/repo", 1) is None
        assert store.read_session("owner/repo", 2) is not None

    def test_removes_everything_without_pr(self, tmp_path):
        root = tmp_path / "rally"
        store = SessionStore(root)
        store.write_session(store.create_session("owner/repo", 1))

        store.cleanup()

        assert not root.exists()

    def test_missing_directory_is_not_an_error(self, tmp_path):
        SessionStore(tmp_path / "nothing").cleanup("owner/repo", 1)
        assert not os.path.exists(tmp_path / "nothing")

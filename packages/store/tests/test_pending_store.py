"""Tests for PendingReviewStore."""

from __future__ import annotations

import json
import threading

import pytest

from prrally_store.errors import PendingReviewParseError, UnsupportedVersionError
from prrally_store.models import PendingReview
from prrally_store.pending import CURRENT_VERSION, PENDING_REVIEW_FILENAME, PendingReviewStore


def _make_pending(repo="owner/repo", pr_number=1, created_at="2025-01-01T00:00:00+00:00", comments=1):
    return PendingReview(
        repo=repo,
        pr_number=pr_number,
        head_sha="a" * 40,
        base_branch="main",
        created_at=created_at,
        review={
            "action": "request_changes",
            "summary": "Needs work",
            "comments": [
                {"path": "src/app.py", "line": 10 + i, "body": "Fix this", "severity": "major"}
                for i in range(comments)
            ],
            "blocking_issues": ["Missing tests"],
        },
    )


def _write_raw(store, repo, pr_number, payload):
    path = store.path_for(repo, pr_number)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload))
    return path


class TestWriteAndRead:
    def test_write_returns_path_in_rally_dir(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        path = store.write(_make_pending())
        assert path == store.rally_dir("owner/repo", 1) / PENDING_REVIEW_FILENAME
        assert path.exists()

    def test_read_back(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        pending = _make_pending()
        loaded = store.read(store.write(pending))
        assert loaded == pending
        assert loaded.comment_count == 1

    def test_write_stamps_current_version(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        pending = _make_pending()
        pending.version = 99
        path = store.write(pending)
        assert json.loads(path.read_text())["version"] == CURRENT_VERSION

    def test_second_write_replaces_first(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        store.write(_make_pending(comments=1))
        path = store.write(_make_pending(comments=3))
        assert store.read(path).comment_count == 3
        assert [p.name for p in path.parent.iterdir()] == [PENDING_REVIEW_FILENAME]


class TestReadErrors:
    def test_missing_file_raises_os_error(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PendingReviewStore(tmp_path).read(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        path = _write_raw(store, "owner/repo", 1, "{not json")
        with pytest.raises(PendingReviewParseError):
            store.read(path)

    def test_wrong_version(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        payload = _make_pending().to_dict()
        payload["version"] = 2
        path = _write_raw(store, "owner/repo", 1, payload)

        with pytest.raises(UnsupportedVersionError) as exc_info:
            store.read(path)
        assert exc_info.value.found == 2
        assert exc_info.value.expected == CURRENT_VERSION
        assert "Unsupported pending review version: 2" in str(exc_info.value)

    def test_boolean_version_is_rejected(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        payload = _make_pending().to_dict()
        payload["version"] = True
        path = _write_raw(store, "owner/repo", 1, payload)

        with pytest.raises(UnsupportedVersionError) as exc_info:
            store.read(path)
        assert exc_info.value.found is True

    def test_invalid_utf8(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        path = store.path_for("owner/repo", 1)
        path.parent.mkdir(parents=True)
        path.write_bytes(b'{"version": 1, "repo": "\xff\xfe"}')

        with pytest.raises(PendingReviewParseError):
            store.read(path)

    def test_version_checked_before_shape(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        path = _write_raw(store, "owner/repo", 1, {"version": 0})
        with pytest.raises(UnsupportedVersionError):
            store.read(path)

    def test_missing_required_field(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        payload = _make_pending().to_dict()
        del payload["head_sha"]
        path = _write_raw(store, "owner/repo", 1, payload)

        with pytest.raises(PendingReviewParseError, match="head_sha"):
            store.read(path)

    def test_malformed_review(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        payload = _make_pending().to_dict()
        payload["review"] = {"comments": "not a list"}
        path = _write_raw(store, "owner/repo", 1, payload)

        with pytest.raises(PendingReviewParseError):
            store.read(path)


class TestFindAll:
    def test_empty_root(self, tmp_path):
        assert PendingReviewStore(tmp_path / "missing").find_all() == []

    def test_skips_unreadable_files(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        store.write(_make_pending(repo="owner/good", pr_number=1))

        wrong_version = _make_pending(repo="owner/old", pr_number=2).to_dict()
        wrong_version["version"] = 0
        _write_raw(store, "owner/old", 2, wrong_version)
        _write_raw(store, "owner/broken", 3, "{{{")
        bad_bytes = store.path_for("owner/binary", 4)
        bad_bytes.parent.mkdir(parents=True)
        bad_bytes.write_bytes(b'{"version": 1, "repo": "\xff\xfe"}')

        summaries = store.find_all()
        assert [(s.repo, s.pr_number) for s in summaries] == [("owner/good", 1)]

    def test_sorted_newest_first(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        store.write(_make_pending(pr_number=1, created_at="2025-01-01T00:00:00+00:00"))
        store.write(_make_pending(pr_number=2, created_at="2025-03-01T00:00:00+00:00"))
        store.write(_make_pending(pr_number=3, created_at="2025-02-01T00:00:00+00:00"))

        assert [s.pr_number for s in store.find_all()] == [2, 3, 1]

    def test_summary_fields(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        path = store.write(_make_pending(comments=2))

        (summary,) = store.find_all()
        assert summary.comment_count == 2
        assert summary.path == path
        assert summary.created_at == "2025-01-01T00:00:00+00:00"


class TestDelete:
    def test_delete_removes_file(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        path = store.write(_make_pending())
        store.delete(path)
        assert not path.exists()
        assert store.find_all() == []

    def test_delete_missing_is_noop(self, tmp_path):
        PendingReviewStore(tmp_path).delete(tmp_path / "gone.json")


class TestConcurrentRead:
    def test_reader_never_sees_partial_file(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        first = _make_pending(comments=500)
        path = store.write(first)

        done = threading.Event()
        failures = []
        reads = []

        def reader():
            while True:
                finished = done.is_set()
                try:
                    data = json.loads(path.read_text(encoding="utf-8"))
                    reads.append(len(data["review"]["comments"]))
                except (OSError, ValueError) as e:
                    failures.append(e)
                if finished:
                    return

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for i in range(50):
                store.write(_make_pending(comments=500, created_at=f"2025-01-01T00:00:{i:02d}+00:00"))
        finally:
            done.set()
            thread.join()

        assert failures == []
        assert reads
        assert set(reads) == {500}

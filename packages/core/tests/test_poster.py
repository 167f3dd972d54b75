"""Tests for posting a reviewer verdict to GitHub."""

from unittest.mock import MagicMock, call

import pytest
from github import GithubException

from prrally_core import events
from prrally_core.events import EventSink
from prrally_core.models import ReviewAction, ReviewComment, ReviewerOutput
from prrally_core.poster import REVIEW_HEADER, PostOptions, post_review

SHA = "a" * 40


def _review(action=ReviewAction.REQUEST_CHANGES, n_comments=3):
    return ReviewerOutput(
        action=action,
        summary="Overall summary",
        comments=[ReviewComment(path=f"f{i}.py", line=i + 1, body=f"Comment {i}") for i in range(n_comments)],
    )


def _gh_error(status=422):
    return GithubException(status, {"message": "Unprocessable"}, None)


@pytest.fixture(autouse=True)
def no_sleep(mocker):
    return mocker.patch("prrally_core.poster.time.sleep")


class TestSummary:
    def test_posts_summary_with_header(self):
        client = MagicMock()
        result = post_review(client, "owner/repo", 1, SHA, _review(n_comments=0))

        client.submit_review.assert_called_once_with(
            "owner/repo", 1, ReviewAction.REQUEST_CHANGES, f"{REVIEW_HEADER}\n\nOverall summary"
        )
        assert result.action is ReviewAction.REQUEST_CHANGES

    def test_without_header(self):
        client = MagicMock()
        post_review(client, "owner/repo", 1, SHA, _review(n_comments=0), PostOptions(include_header=False))
        assert client.submit_review.call_args.args[3] == "Overall summary"

    def test_summary_can_be_skipped(self):
        client = MagicMock()
        result = post_review(client, "owner/repo", 1, SHA, _review(n_comments=1), PostOptions(post_summary=False))

        client.submit_review.assert_not_called()
        assert result.action is None
        assert result.posted_comments == 1

    def test_approve_falls_back_to_comment(self):
        client = MagicMock()
        client.submit_review.side_effect = [_gh_error(), None]
        sink = EventSink()

        result = post_review(client, "owner/repo", 1, SHA, _review(ReviewAction.APPROVE, 0), event_sink=sink)

        assert [c.args[2] for c in client.submit_review.call_args_list] == [
            ReviewAction.APPROVE,
            ReviewAction.COMMENT,
        ]
        assert result.action is ReviewAction.COMMENT
        assert events.Log("Approve failed, falling back to comment") in sink.drain()

    def test_approve_falls_back_on_transport_error(self):
        client = MagicMock()
        client.submit_review.side_effect = [ConnectionError("reset"), None]

        result = post_review(client, "owner/repo", 1, SHA, _review(ReviewAction.APPROVE, 0))

        assert client.submit_review.call_args_list[1].args[2] is ReviewAction.COMMENT
        assert result.action is ReviewAction.COMMENT

    def test_failed_fallback_propagates(self):
        client = MagicMock()
        client.submit_review.side_effect = [_gh_error(), _gh_error(500)]

        with pytest.raises(GithubException):
            post_review(client, "owner/repo", 1, SHA, _review(ReviewAction.APPROVE, 1))
        client.create_review_comment.assert_not_called()

    def test_non_approve_failure_propagates_without_fallback(self):
        client = MagicMock()
        client.submit_review.side_effect = _gh_error()

        with pytest.raises(GithubException):
            post_review(client, "owner/repo", 1, SHA, _review(ReviewAction.REQUEST_CHANGES))
        client.submit_review.assert_called_once()
        client.create_review_comment.assert_not_called()


class TestInlineComments:
    def test_posts_each_comment_with_pause(self, no_sleep):
        client = MagicMock()
        result = post_review(client, "owner/repo", 1, SHA, _review(n_comments=2))

        assert client.create_review_comment.call_args_list == [
            call("owner/repo", 1, SHA, "f0.py", 1, f"{REVIEW_HEADER}\n\nComment 0"),
            call("owner/repo", 1, SHA, "f1.py", 2, f"{REVIEW_HEADER}\n\nComment 1"),
        ]
        assert no_sleep.call_args_list == [call(0.1), call(0.1)]
        assert result.posted_comments == 2

    def test_one_failing_comment_does_not_stop_the_rest(self):
        client = MagicMock()
        client.create_review_comment.side_effect = [None, _gh_error(), None]
        sink = EventSink()

        result = post_review(client, "owner/repo", 1, SHA, _review(n_comments=3), event_sink=sink)

        assert client.create_review_comment.call_count == 3
        assert result.posted_comments == 2
        assert result.failed_comments == ["f1.py:2"]
        logs = [e.message for e in sink.drain() if isinstance(e, events.Log)]
        assert any(m.startswith("Warning: Failed to post inline comment on f1.py:2") for m in logs)

    def test_transport_error_on_one_comment_does_not_stop_the_rest(self):
        client = MagicMock()
        client.create_review_comment.side_effect = [None, ConnectionError("reset"), None]
        sink = EventSink()

        result = post_review(client, "owner/repo", 1, SHA, _review(n_comments=3), event_sink=sink)

        assert client.create_review_comment.call_count == 3
        assert result.posted_comments == 2
        assert result.failed_comments == ["f1.py:2"]
        logs = [e.message for e in sink.drain() if isinstance(e, events.Log)]
        assert "Warning: Failed to post inline comment on f1.py:2: reset" in logs

"""Publish a reviewer verdict to GitHub.

Used both right after a live rally and by `prrally post` for saved reviews.
The summary review goes first; inline comments follow one at a time with a
short pause between them. A failed inline comment is reported and skipped.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from prrally_core import events
from prrally_core.events import EventSink
from prrally_core.models import ReviewAction, ReviewerOutput

logger = logging.getLogger(__name__)

REVIEW_HEADER = "[AI Rally - Reviewer]"
COMMENT_DELAY_SECONDS = 0.1


@dataclass
class PostOptions:
    include_header: bool = True
    post_summary: bool = True


@dataclass
class PostResult:
    action: ReviewAction | None = None
    posted_comments: int = 0
    failed_comments: list[str] = field(default_factory=list)


def _with_header(text: str, options: PostOptions) -> str:
    return f"{REVIEW_HEADER}\n\n{text}" if options.include_header else text


def post_review(
    client,
    repo: str,
    pr_number: int,
    head_sha: str,
    review: ReviewerOutput,
    options: PostOptions | None = None,
    event_sink: EventSink | None = None,
) -> PostResult:
    """Post `review` to the PR and return what was actually published.

    An APPROVE that fails for any reason (GitHub refuses approvals on your
    own PR) is retried once as COMMENT. Any other summary failure propagates
    and no inline comments are posted.
    """
    options = options or PostOptions()
    result = PostResult()

    if options.post_summary:
        body = _with_header(review.summary, options)
        try:
            client.submit_review(repo, pr_number, review.action, body)
            result.action = review.action
        except Exception as e:
            if review.action is not ReviewAction.APPROVE:
                raise
            logger.warning("Approve failed, falling back to comment: %s", e)
            if event_sink is not None:
                event_sink.send(events.Log("Approve failed, falling back to comment"))
            client.submit_review(repo, pr_number, ReviewAction.COMMENT, body)
            result.action = ReviewAction.COMMENT

    for comment in review.comments:
        location = f"{comment.path}:{comment.line}"
        try:
            client.create_review_comment(
                repo, pr_number, head_sha, comment.path, comment.line, _with_header(comment.body, options)
            )
            result.posted_comments += 1
        except Exception as e:
            logger.warning("Failed to post inline comment on %s: %s", location, e)
            if event_sink is not None:
                event_sink.send(events.Log(f"Warning: Failed to post inline comment on {location}: {e}"))
            result.failed_comments.append(location)
        time.sleep(COMMENT_DELAY_SECONDS)

    return result

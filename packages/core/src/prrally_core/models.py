"""Data exchanged between the orchestrator and the agents.

Reviewer and reviewee outputs come from model-generated JSON, so the
from_dict() constructors are forgiving about cosmetic issues (case, unknown
severities) and strict about anything control flow depends on (the review
action and the fix status).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from prrally_core.errors import ContractViolationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Context:
    """Immutable per-run input, owned by the caller."""

    repo: str
    pr_number: int
    pr_title: str
    diff: str
    pr_body: str | None = None
    working_dir: str | None = None


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    COMMENT = "comment"


class CommentSeverity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    SUGGESTION = "suggestion"


class RevieweeStatus(str, Enum):
    COMPLETED = "completed"
    NEEDS_CLARIFICATION = "needs_clarification"
    NEEDS_PERMISSION = "needs_permission"
    ERROR = "error"


def _parse_enum(enum_cls, value, what: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ContractViolationError(f"Unknown {what}: {value!r}") from None


@dataclass(frozen=True)
class ReviewComment:
    path: str
    line: int
    body: str
    severity: CommentSeverity = CommentSeverity.MINOR

    def to_dict(self) -> dict:
        return {"path": self.path, "line": self.line, "body": self.body, "severity": self.severity.value}


@dataclass(frozen=True)
class ReviewerOutput:
    action: ReviewAction
    summary: str
    comments: list[ReviewComment] = field(default_factory=list)
    blocking_issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "summary": self.summary,
            "comments": [c.to_dict() for c in self.comments],
            "blocking_issues": list(self.blocking_issues),
        }

    @classmethod
    def from_dict(cls, d: dict) -> ReviewerOutput:
        if not isinstance(d, dict):
            raise ContractViolationError("Reviewer output must be a JSON object")
        if "action" not in d:
            raise ContractViolationError("Reviewer output is missing 'action'")

        comments = []
        for c in d.get("comments") or []:
            if not isinstance(c, dict):
                continue
            path = c.get("path")
            body = c.get("body") or c.get("comment")
            try:
                line = int(c.get("line"))
            except (TypeError, ValueError):
                line = None
            if not path or not body or not line:
                logger.debug("Dropping reviewer comment without path/line/body: %r", c)
                continue
            try:
                severity = CommentSeverity(str(c.get("severity", "minor")).lower())
            except ValueError:
                severity = CommentSeverity.MINOR
            comments.append(ReviewComment(path=path, line=line, body=body, severity=severity))

        return cls(
            action=_parse_enum(ReviewAction, d["action"], "review action"),
            summary=d.get("summary") or "",
            comments=comments,
            blocking_issues=[str(i) for i in d.get("blocking_issues") or []],
        )


@dataclass(frozen=True)
class PermissionRequest:
    action: str
    reason: str = ""


@dataclass(frozen=True)
class RevieweeOutput:
    """One fix attempt.

    Exactly one payload is meaningful per status: `question` for
    NEEDS_CLARIFICATION, `permission_request` for NEEDS_PERMISSION and
    `error_details` for ERROR (where it may be absent). validate() enforces it.
    """

    status: RevieweeStatus
    summary: str
    files_modified: list[str] = field(default_factory=list)
    question: str | None = None
    permission_request: PermissionRequest | None = None
    error_details: str | None = None

    def validate(self) -> None:
        """Raise ContractViolationError unless the payload matches the status."""
        has_question = bool(self.question and self.question.strip())
        has_permission = self.permission_request is not None and bool(self.permission_request.action.strip())
        has_error = self.error_details is not None

        if self.status is RevieweeStatus.NEEDS_CLARIFICATION and not has_question:
            raise ContractViolationError("Reviewee needs clarification but gave no question")
        if self.status is RevieweeStatus.NEEDS_PERMISSION and not has_permission:
            raise ContractViolationError("Reviewee needs permission but gave no permission request")

        stray = []
        if has_question and self.status is not RevieweeStatus.NEEDS_CLARIFICATION:
            stray.append("question")
        if self.permission_request is not None and self.status is not RevieweeStatus.NEEDS_PERMISSION:
            stray.append("permission_request")
        if has_error and self.status is not RevieweeStatus.ERROR:
            stray.append("error_details")
        if stray:
            raise ContractViolationError(
                f"Reviewee status {self.status.value!r} carries unexpected payload: {', '.join(stray)}"
            )

    def to_dict(self) -> dict:
        d: dict = {
            "status": self.status.value,
            "summary": self.summary,
            "files_modified": list(self.files_modified),
        }
        if self.question is not None:
            d["question"] = self.question
        if self.permission_request is not None:
            d["permission_request"] = {
                "action": self.permission_request.action,
                "reason": self.permission_request.reason,
            }
        if self.error_details is not None:
            d["error_details"] = self.error_details
        return d

    @classmethod
    def from_dict(cls, d: dict) -> RevieweeOutput:
        if not isinstance(d, dict):
            raise ContractViolationError("Reviewee output must be a JSON object")
        if "status" not in d:
            raise ContractViolationError("Reviewee output is missing 'status'")

        perm = d.get("permission_request")
        permission_request = None
        if isinstance(perm, dict) and perm.get("action"):
            permission_request = PermissionRequest(action=str(perm["action"]), reason=str(perm.get("reason") or ""))

        return cls(
            status=_parse_enum(RevieweeStatus, d["status"], "reviewee status"),
            summary=d.get("summary") or "",
            files_modified=[str(p) for p in d.get("files_modified") or []],
            question=d.get("question") or None,
            permission_request=permission_request,
            error_details=d.get("error_details") or None,
        )

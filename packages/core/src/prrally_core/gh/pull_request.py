from __future__ import annotations

from github import Github

from prrally_core.models import Context, ReviewAction

# GitHub review events for each reviewer action.
_REVIEW_EVENTS = {
    ReviewAction.APPROVE: "APPROVE",
    ReviewAction.REQUEST_CHANGES: "REQUEST_CHANGES",
    ReviewAction.COMMENT: "COMMENT",
}


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def build_unified_diff(files) -> str:
    """Assemble a unified diff from the PR's changed files.

    GitHub returns one patch hunk set per file without headers; headers are
    rebuilt so agents see a conventional `git diff` layout.
    """
    chunks = []
    for f in sorted(files, key=lambda f: f.filename):
        old_path = getattr(f, "previous_filename", None) or f.filename
        a_path = "/dev/null" if f.status == "added" else f"a/{old_path}"
        b_path = "/dev/null" if f.status == "removed" else f"b/{f.filename}"
        header = f"diff --git a/{old_path} b/{f.filename}\n--- {a_path}\n+++ {b_path}"
        if f.patch:
            chunks.append(f"{header}\n{f.patch}")
        else:
            chunks.append(f"diff --git a/{old_path} b/{f.filename}\nBinary files differ")
    return "\n".join(chunks)


def build_context(pr, repo_name: str, working_dir: str | None = None) -> Context:
    return Context(
        repo=repo_name,
        pr_number=pr.number,
        pr_title=pr.title or "",
        diff=build_unified_diff(pr.get_files()),
        pr_body=pr.body or None,
        working_dir=working_dir,
    )


class GitHubReviewClient:
    """The two review-posting calls the poster needs, over PyGithub."""

    def __init__(self, token: str, github: Github | None = None):
        self._github = github if github is not None else Github(token)
        self._repos: dict = {}

    def _repo(self, repo_name: str):
        if repo_name not in self._repos:
            self._repos[repo_name] = self._github.get_repo(repo_name)
        return self._repos[repo_name]

    def submit_review(self, repo_name: str, pr_number: int, action: ReviewAction, body: str):
        pr = self._repo(repo_name).get_pull(pr_number)
        return pr.create_review(body=body, event=_REVIEW_EVENTS[action])

    def create_review_comment(self, repo_name: str, pr_number: int, head_sha: str, path: str, line: int, body: str):
        repo = self._repo(repo_name)
        pr = repo.get_pull(pr_number)
        return pr.create_review_comment(body, repo.get_commit(head_sha), path, line=line, side="RIGHT")

"""Prompt builders for the reviewer and reviewee agents.

Pure string functions: no I/O, same inputs give the same prompt.
Custom instructions, when configured, are placed before the default text.
"""

from __future__ import annotations

from prrally_core.models import Context, ReviewerOutput, RevieweeOutput

NO_DESCRIPTION = "(No description provided)"
NO_CHANGES_RECORDED = "No changes recorded"

REVIEWER_OUTPUT_FORMAT = """Respond with **only** a JSON object of this shape:

{
  "action": "<approve|request_changes|comment>",
  "summary": "<overall assessment in GitHub-flavored markdown>",
  "comments": [
    {
      "path": "<file path relative to the repository root>",
      "line": <line number in the new file (integer)>,
      "body": "<concise, actionable comment>",
      "severity": "<critical|major|minor|suggestion>"
    }
  ],
  "blocking_issues": ["<issue that must be resolved before approval>"]
}

Do not return any text outside the JSON object."""

REVIEWEE_OUTPUT_FORMAT = """Respond with **only** a JSON object of this shape:

{
  "status": "<completed|needs_clarification|needs_permission|error>",
  "summary": "<what you changed and why>",
  "files_modified": ["<path>"],
  "question": "<only when status is needs_clarification>",
  "permission_request": {"action": "<what you want to do>", "reason": "<why>"},
  "error_details": "<only when status is error>"
}

Include "question" only for needs_clarification, "permission_request" only
for needs_permission and "error_details" only for error.
Do not return any text outside the JSON object."""


def _custom_section(custom_prompt: str | None) -> str:
    if not custom_prompt:
        return ""
    return f"## Custom Instructions\n\n{custom_prompt}\n\n"


def build_reviewer_prompt(context: Context, iteration: int, custom_prompt: str | None = None) -> str:
    """Build the first-iteration review prompt."""
    pr_body = context.pr_body or NO_DESCRIPTION
    return f"""{_custom_section(custom_prompt)}You are a code reviewer for a GitHub Pull Request.

## Context

Repository: {context.repo}
PR #{context.pr_number}: {context.pr_title}

### PR Description
{pr_body}

### Diff
```diff
{context.diff}
```

## Your Task

This is iteration {iteration} of the review process.

1. Carefully review the changes in the diff
2. Check for:
   - Code quality issues
   - Potential bugs
   - Security vulnerabilities
   - Performance concerns
   - Style and consistency issues
   - Missing tests or documentation

3. Provide your review decision:
   - "approve" if the changes are good to merge
   - "request_changes" if there are issues that must be fixed
   - "comment" if you have suggestions but they're not blocking

4. List any blocking issues that must be resolved before approval

## Output Format

You MUST respond with a JSON object matching the schema provided.
Be specific in your comments with file paths and line numbers."""


def summarize_fix(fix: RevieweeOutput | None) -> str:
    """Describe the previous fix for the re-review prompt."""
    if fix is None:
        return NO_CHANGES_RECORDED
    files = ", ".join(fix.files_modified) if fix.files_modified else "No files modified"
    return f"{fix.summary}\n\nFiles modified: {files}"


def build_rereview_prompt(context: Context, iteration: int, changes_summary: str) -> str:
    return f"""The developer has made changes based on your review feedback.

## Context

Repository: {context.repo}
PR #{context.pr_number}: {context.pr_title}

## Changes Made (Iteration {iteration})
{changes_summary}

## Your Task

1. Re-review the changes
2. Check if the blocking issues have been addressed
3. Look for any new issues introduced by the fixes
4. Decide if the PR is now ready to merge

## Output Format

You MUST respond with a JSON object matching the schema provided."""


def build_reviewee_prompt(
    context: Context,
    review: ReviewerOutput,
    iteration: int,
    custom_prompt: str | None = None,
) -> str:
    """Turn a reviewer verdict into fix instructions for the reviewee."""
    comments_text = "\n".join(
        f"- [{c.severity.value.upper()}] {c.path}:{c.line}: {c.body}" for c in review.comments
    )
    if review.blocking_issues:
        blocking_text = "\n".join(f"- {issue}" for issue in review.blocking_issues)
    else:
        blocking_text = "None"

    return f"""{_custom_section(custom_prompt)}You are a developer fixing code based on review feedback.

## Context

Repository: {context.repo}
PR #{context.pr_number}: {context.pr_title}

## Review Feedback (Iteration {iteration})

### Summary
{review.summary}

### Review Action: {review.action.value}

### Comments
{comments_text}

### Blocking Issues
{blocking_text}

## Your Task

1. Address each blocking issue and review comment
2. Make the necessary code changes
3. If something is unclear, set status to "needs_clarification" and ask a question
4. If you need permission for a significant change, set status to "needs_permission"

## Output Format

You MUST respond with a JSON object matching the schema provided.
List all files you modified in the "files_modified" array."""


def build_clarification_prompt(question: str) -> str:
    return f"""The developer has a question about your review feedback:

## Question
{question}

Please provide a clear answer to help them proceed with the fixes.
After answering, provide an updated review if needed."""


def build_permission_granted_prompt(action: str) -> str:
    return f"""Permission has been granted for the following action:

{action}

Please proceed with the implementation."""

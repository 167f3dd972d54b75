"""Reviewer/reviewee rally engine for GitHub pull requests."""

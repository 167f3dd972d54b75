"""Exceptions raised by the store layer."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for every store failure."""


class PersistenceError(StoreError):
    """A durable write did not complete.

    The caller must treat whatever it tried to save as unsaved.
    """


class PendingReviewError(StoreError):
    """A pending review file could not be turned into a PendingReview."""


class PendingReviewParseError(PendingReviewError):
    """The file is not valid JSON or does not have the pending review shape."""


class UnsupportedVersionError(PendingReviewError):
    def __init__(self, found, expected: int):
        self.found = found
        self.expected = expected
        super().__init__(f"Unsupported pending review version: {found} (expected {expected})")

"""Exceptions raised at the snapshot request boundary."""

from __future__ import annotations


class SnapshotError(Exception):
    """Base class for failures reported to archive/list/compare callers."""


class InvalidRequestError(SnapshotError):
    """A request argument is malformed."""


class InvalidURLError(InvalidRequestError):
    """The requested URL is not an absolute http(s) URL."""


class SnapshotNotFoundError(SnapshotError):
    """A snapshot directory or its entry page does not exist."""


class CrawlFailedError(SnapshotError):
    """Not a single page, including the seed, could be fetched."""

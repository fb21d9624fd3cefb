"""
Archive failure types and the classification used by the backfill walker.
"""

from __future__ import annotations

import enum
import re
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import BackfillSummary


class ArchiveError(RuntimeError):
    """Raised when the archive cannot supply a frame."""


class FatalArchiveError(ArchiveError):
    """Authentication, permission or connectivity failure; retrying is pointless."""


class NoDataError(ArchiveError):
    """The archive has no usable footage for the requested instant."""


class NotFoundError(NoDataError):
    """The archive reported the requested footage as not found."""


class BackfillAborted(FatalArchiveError):
    """Raised when a fatal failure ends a walk; carries the partial summary."""

    def __init__(self, message: str, summary: Optional["BackfillSummary"] = None) -> None:
        super().__init__(message)
        self.summary = summary


class FailureKind(enum.Enum):
    FATAL = "fatal"
    NOT_FOUND = "not-found"
    NO_DATA = "no-data"
    OTHER = "other"


FATAL_PATTERN = re.compile(
    r"failed to login|eperm|econnrefused|unauthorized|forbidden|invalid credentials|network unreachable"
)
NO_DATA_PATTERN = re.compile(
    r"404|no data|no recording|no video data|not found|taking too long|throttling api calls|timed out"
)
NOT_FOUND_PATTERN = re.compile(r"404|not found")


def classify_failure(exc: BaseException) -> FailureKind:
    """Classify an archive failure.

    Typed archive errors are trusted as-is. Anything else is classified by
    matching its message, so errors from third-party code still land in a
    sensible bucket.
    """
    if isinstance(exc, FatalArchiveError):
        return FailureKind.FATAL
    if isinstance(exc, NotFoundError):
        return FailureKind.NOT_FOUND
    if isinstance(exc, NoDataError):
        return FailureKind.NO_DATA

    message = str(exc).lower()
    if FATAL_PATTERN.search(message):
        return FailureKind.FATAL
    if NO_DATA_PATTERN.search(message):
        if NOT_FOUND_PATTERN.search(message):
            return FailureKind.NOT_FOUND
        return FailureKind.NO_DATA
    return FailureKind.OTHER

"""
Historical backfill of camera frames from an archive.
"""

from .errors import (
    ArchiveError,
    BackfillAborted,
    FailureKind,
    FatalArchiveError,
    NoDataError,
    NotFoundError,
    classify_failure,
)
from .models import BackfillLimits, BackfillState, BackfillSummary
from .walker import BackfillWalker, backfill

__all__ = [
    "ArchiveError",
    "BackfillAborted",
    "BackfillLimits",
    "BackfillState",
    "BackfillSummary",
    "BackfillWalker",
    "FailureKind",
    "FatalArchiveError",
    "NoDataError",
    "NotFoundError",
    "backfill",
    "classify_failure",
]

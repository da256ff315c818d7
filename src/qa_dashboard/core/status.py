"""Test case status classification.

Jira workflow status names are not standardized across projects or sites
("Passed", "Pass - Verified", "Partially Passing", "Broken", "FAILED"...), so
statuses are bucketed by substring rather than by an exact enum match.
"""
from typing import Optional

from qa_dashboard.core.models import StatusBucket


# Checked in order; the first rule whose substrings occur wins.
STATUS_RULES = (
    (StatusBucket.PASSING, ("pass",)),
    (StatusBucket.PARTIAL, ("partial",)),
    (StatusBucket.BREAKING, ("break", "fail")),
)


def classify_status(status: Optional[str]) -> StatusBucket:
    """
    Map a free-form status string to one of the four canonical buckets.

    Total function: anything unmatched (including None and "") is pending.

    Example:
        >>> classify_status("Partially Passing")
        <StatusBucket.PASSING: 'passing'>
        >>> classify_status("Blocked")
        <StatusBucket.PENDING: 'pending'>
    """
    text = (status or "").lower()
    for bucket, needles in STATUS_RULES:
        if any(needle in text for needle in needles):
            return bucket
    return StatusBucket.PENDING

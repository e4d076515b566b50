"""Application status ordering and pipeline stages."""
from __future__ import annotations

APPLICATION_STATUSES = (
    "draft",
    "submitted",
    "in_review",
    "sent_to_lender",
    "approved",
    "declined",
    "funded",
    "withdrawn",
)

# approved and declined are alternatives at the same step; withdrawn is terminal from anywhere
_RANK = {
    "draft": 0,
    "submitted": 1,
    "in_review": 2,
    "sent_to_lender": 3,
    "approved": 4,
    "declined": 4,
    "funded": 5,
}

PIPELINE_STAGES = (
    "New",
    "Requires Docs",
    "In Review",
    "Send to Lender",
    "Sent to Lender",
    "Accepted",
    "Declined",
)

FINALIZABLE_STATUSES = ("draft", "submitted")


def is_known_status(status: str) -> bool:
    return status in APPLICATION_STATUSES


def is_backwards(current: str, target: str) -> bool:
    """True when moving from current to target goes back down the pipeline."""
    if current == target:
        return False
    if current == "withdrawn":
        return True
    if target == "withdrawn":
        return False
    if current in ("approved", "declined") and target in ("approved", "declined"):
        return True
    return _RANK.get(target, 0) < _RANK.get(current, 0)


def can_transition(current: str, target: str, override: bool = False) -> bool:
    if not is_known_status(target):
        return False
    return override or not is_backwards(current, target)

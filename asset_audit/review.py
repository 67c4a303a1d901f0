"""
asset_audit/review.py

Review lifecycle of a submitted audit log.

    pending ──approve──▶ approved   (terminal)
       │
       └────reject────▶ rejected   (terminal, rejected_remark required)

Transitions are pure: they validate the precondition and return a new
AuditLog. Persisting the result atomically (only if the stored status is
still pending) is the storage layer's job, see audit_store.save_review().

Approval does not touch the asset record; applying proposed_changes is left to
whoever observes the approved state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Mapping, Optional

try:
    from asset_audit.errors import InvalidTransitionError, ValidationError
    from asset_audit.models import AuditLog, ReviewStatus
except ModuleNotFoundError:
    from errors import InvalidTransitionError, ValidationError
    from models import AuditLog, ReviewStatus

logger = logging.getLogger(__name__)


TRANSITIONS: Dict[ReviewStatus, FrozenSet[ReviewStatus]] = {
    ReviewStatus.pending: frozenset({ReviewStatus.approved, ReviewStatus.rejected}),
    ReviewStatus.approved: frozenset(),
    ReviewStatus.rejected: frozenset(),
}


def can_transition(current: ReviewStatus, target: ReviewStatus) -> bool:
    return target in TRANSITIONS.get(ReviewStatus(current), frozenset())


def _require_transition(log: AuditLog, target: ReviewStatus) -> None:
    if not can_transition(log.review_status, target):
        logger.info(
            "[REVIEW] Illegal transition: audit_id=%s, %s -> %s",
            log.id, log.review_status.value, target.value,
        )
        raise InvalidTransitionError(
            f"Audit log {log.id} is already {log.review_status.value} and cannot be {target.value}"
        )


def _transition(log: AuditLog, reviewer_id: Optional[int], **changes: Any) -> AuditLog:
    # model_validate rather than model_copy so the model invariants are re-checked
    data = log.model_dump()
    data.update(changes)
    data["updated_at"] = datetime.now(timezone.utc)
    if reviewer_id is not None:
        data["updated_by"] = reviewer_id
    return AuditLog.model_validate(data)


def approve(log: AuditLog, reviewer_id: Optional[int] = None) -> AuditLog:
    """
    Approve a pending audit log.

    Raises:
        InvalidTransitionError: If the log is not pending
    """
    _require_transition(log, ReviewStatus.approved)
    return _transition(log, reviewer_id, review_status=ReviewStatus.approved, rejected_remark=None)


def reject(log: AuditLog, remark: Optional[str], reviewer_id: Optional[int] = None) -> AuditLog:
    """
    Reject a pending audit log with a remark.

    Raises:
        InvalidTransitionError: If the log is not pending
        ValidationError: If the remark is empty after trimming
    """
    _require_transition(log, ReviewStatus.rejected)
    text = (remark or "").strip()
    if not text:
        raise ValidationError("Rejected remark is required for rejection")
    return _transition(log, reviewer_id, review_status=ReviewStatus.rejected, rejected_remark=text)


def apply_review(log: AuditLog, request: Mapping[str, Any], reviewer_id: Optional[int] = None) -> AuditLog:
    """
    Apply a review request in the endpoint's shape.

    Args:
        request: {"reviewStatus": "approved"} or
            {"reviewStatus": "rejected", "rejectedRemark": "..."}

    Raises:
        ValidationError: reviewStatus is neither approved nor rejected
        InvalidTransitionError, ValidationError: from approve()/reject()
    """
    status = request.get("reviewStatus")
    if status == ReviewStatus.approved.value:
        return approve(log, reviewer_id)
    if status == ReviewStatus.rejected.value:
        return reject(log, request.get("rejectedRemark"), reviewer_id)
    raise ValidationError("Invalid review status")

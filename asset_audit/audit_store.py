"""
asset_audit/audit_store.py

Storage and query helpers for asset audit logs.

All functions take an open sqlite3 connection (row_factory = sqlite3.Row) and
leave closing it to the caller.

Review writes are compare-and-swap on review_status: the UPDATE only matches
while the stored row is still pending, so of two concurrent reviewers exactly
one wins and the other gets InvalidTransitionError.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

try:
    from asset_audit.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
    from asset_audit.errors import InvalidTransitionError, NotFoundError, ValidationError
    from asset_audit.models import AuditLog, ReviewStatus
    from asset_audit.proposal import AuditSubmissionPayload
    from asset_audit.review import apply_review
except ModuleNotFoundError:
    from config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
    from errors import InvalidTransitionError, NotFoundError, ValidationError
    from models import AuditLog, ReviewStatus
    from proposal import AuditSubmissionPayload
    from review import apply_review

logger = logging.getLogger(__name__)

_COLUMNS = """
    id, asset_id, created_by, updated_by, review_status, proposed_changes,
    auditor_remark, rejected_remark, asset_image,
    audit_image_1, audit_image_2, audit_image_3,
    created_at, updated_at
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_log(row: sqlite3.Row) -> AuditLog:
    try:
        proposed = json.loads(row["proposed_changes"]) if row["proposed_changes"] else {}
    except (json.JSONDecodeError, TypeError):
        logger.warning("[AUDIT] Unreadable proposed_changes on audit_id=%s", row["id"])
        proposed = {}

    return AuditLog(
        id=row["id"],
        asset_id=row["asset_id"],
        created_by=row["created_by"],
        updated_by=row["updated_by"],
        review_status=row["review_status"],
        proposed_changes=proposed,
        auditor_remark=row["auditor_remark"] or "",
        rejected_remark=row["rejected_remark"],
        asset_image=row["asset_image"],
        audit_images=[
            ref for ref in (row["audit_image_1"], row["audit_image_2"], row["audit_image_3"]) if ref
        ],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ============================================================================
# Assets
# ============================================================================

def asset_exists(conn: sqlite3.Connection, asset_id: int) -> bool:
    row = conn.execute(
        "SELECT 1 FROM assets WHERE id = ? AND status = 1",
        (asset_id,),
    ).fetchone()
    return row is not None


def require_asset(conn: sqlite3.Connection, asset_id: Any) -> int:
    """
    Resolve an asset reference to an existing asset id.

    Raises:
        ValidationError: Non-numeric asset id
        NotFoundError: Asset does not exist
    """
    try:
        resolved = int(asset_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid assetId: {asset_id!r}") from None
    if not asset_exists(conn, resolved):
        raise NotFoundError("Asset not found")
    return resolved


# ============================================================================
# Submission
# ============================================================================

def insert_audit_log(
    conn: sqlite3.Connection,
    payload: AuditSubmissionPayload,
    created_by: int,
    asset_image: Optional[str] = None,
    audit_images: Sequence[str] = (),
) -> AuditLog:
    """
    Store a sanitized submission as a pending audit log.

    Args:
        payload: Output of build_proposal()
        created_by: Submitting user
        asset_image: Stored reference of the current-asset image, if any
        audit_images: Stored references of the audit images (0-3)

    Raises:
        ValidationError: Non-numeric asset id
        NotFoundError: Asset does not exist
    """
    asset_id = require_asset(conn, payload.asset_id)

    images = list(audit_images) + [None] * (3 - len(audit_images))
    now = _now().isoformat()
    cur = conn.execute(
        """
        INSERT INTO asset_audit_logs (
            asset_id, created_by, updated_by, review_status, proposed_changes,
            auditor_remark, asset_image, audit_image_1, audit_image_2, audit_image_3,
            created_at, updated_at
        ) VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            asset_id,
            created_by,
            created_by,
            json.dumps(payload.proposed_changes),
            payload.auditor_remark,
            asset_image,
            images[0],
            images[1],
            images[2],
            now,
            now,
        ),
    )
    conn.commit()
    audit_id = cur.lastrowid
    logger.info("[AUDIT] Created audit_id=%s, asset_id=%s, user_id=%s", audit_id, asset_id, created_by)
    return get_audit_log(conn, audit_id)


def get_audit_log(conn: sqlite3.Connection, audit_id: int) -> AuditLog:
    """
    Raises:
        NotFoundError: If no audit log has that id
    """
    row = conn.execute(
        f"SELECT {_COLUMNS} FROM asset_audit_logs WHERE id = ?",
        (audit_id,),
    ).fetchone()
    if row is None:
        raise NotFoundError("Audit log not found")
    return _row_to_log(row)


# ============================================================================
# Review
# ============================================================================

def save_review(conn: sqlite3.Connection, reviewed: AuditLog) -> AuditLog:
    """
    Persist a reviewed log, only if the stored row is still pending.

    Raises:
        NotFoundError: Row no longer exists
        InvalidTransitionError: Row left pending before this write landed
    """
    updated_at = (reviewed.updated_at or _now()).isoformat()
    cur = conn.execute(
        """
        UPDATE asset_audit_logs
        SET review_status = ?, rejected_remark = ?, updated_by = ?, updated_at = ?
        WHERE id = ? AND review_status = 'pending'
        """,
        (
            reviewed.review_status.value,
            reviewed.rejected_remark,
            reviewed.updated_by,
            updated_at,
            reviewed.id,
        ),
    )
    conn.commit()

    if cur.rowcount == 0:
        current = get_audit_log(conn, reviewed.id)
        logger.warning(
            "[REVIEW] Conflict: audit_id=%s is already %s, %s not applied",
            reviewed.id, current.review_status.value, reviewed.review_status.value,
        )
        raise InvalidTransitionError(
            f"Audit log {reviewed.id} was already {current.review_status.value}"
        )

    logger.info(
        "[REVIEW] audit_id=%s -> %s by user_id=%s",
        reviewed.id, reviewed.review_status.value, reviewed.updated_by,
    )
    return reviewed


def review_audit_log(
    conn: sqlite3.Connection,
    audit_id: int,
    request: Mapping[str, Any],
    reviewer_id: int,
) -> AuditLog:
    """
    Load, transition and persist in one call.

    Raises:
        NotFoundError, ValidationError, InvalidTransitionError
    """
    log = get_audit_log(conn, audit_id)
    reviewed = apply_review(log, request, reviewer_id)
    return save_review(conn, reviewed)


# ============================================================================
# Queries
# ============================================================================

@dataclass
class AuditLogFilters:
    status: Optional[str] = None
    asset_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE


@dataclass
class AuditLogPage:
    items: List[AuditLog] = field(default_factory=list)
    total_entries: int = 0
    entries_per_page: int = DEFAULT_PAGE_SIZE
    current_page: int = 1

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_entries / self.entries_per_page) if self.entries_per_page else 0

    @property
    def has_more(self) -> bool:
        return self.current_page < self.total_pages


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _where_clause(filters: AuditLogFilters) -> tuple:
    clauses: List[str] = []
    params: List[Any] = []

    if filters.status:
        try:
            status = ReviewStatus(filters.status)
        except ValueError:
            raise ValidationError(f"Invalid status filter: {filters.status!r}") from None
        clauses.append("review_status = ?")
        params.append(status.value)

    if filters.asset_id is not None:
        clauses.append("asset_id = ?")
        params.append(filters.asset_id)

    if filters.start_date:
        start = datetime.combine(filters.start_date, time.min, tzinfo=timezone.utc)
        clauses.append("created_at >= ?")
        params.append(start.isoformat())

    if filters.end_date:
        # Inclusive through the end of the day
        end = datetime.combine(filters.end_date, time.max, tzinfo=timezone.utc)
        clauses.append("created_at <= ?")
        params.append(end.isoformat())

    if filters.search:
        clauses.append("auditor_remark LIKE ? ESCAPE '\\' COLLATE NOCASE")
        params.append(f"%{_escape_like(filters.search)}%")

    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


def list_audit_logs(conn: sqlite3.Connection, filters: AuditLogFilters) -> AuditLogPage:
    """
    Filtered, paginated audit logs, newest first.

    Raises:
        ValidationError: Unknown status filter or bad pagination values
    """
    if filters.page < 1:
        raise ValidationError("page must be at least 1")
    if not 1 <= filters.limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    where, params = _where_clause(filters)
    total = conn.execute(f"SELECT COUNT(*) FROM asset_audit_logs {where}", params).fetchone()[0]

    offset = (filters.page - 1) * filters.limit
    rows = conn.execute(
        f"""
        SELECT {_COLUMNS} FROM asset_audit_logs
        {where}
        ORDER BY created_at DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        [*params, filters.limit, offset],
    ).fetchall()

    return AuditLogPage(
        items=[_row_to_log(row) for row in rows],
        total_entries=total,
        entries_per_page=filters.limit,
        current_page=filters.page,
    )


def count_by_status(conn: sqlite3.Connection, asset_id: Optional[int] = None) -> Dict[str, int]:
    """Count audit logs per review status; every status appears, zeros included."""
    counts = {status.value: 0 for status in ReviewStatus}
    if asset_id is None:
        rows = conn.execute(
            "SELECT review_status, COUNT(*) AS n FROM asset_audit_logs GROUP BY review_status"
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT review_status, COUNT(*) AS n FROM asset_audit_logs WHERE asset_id = ? GROUP BY review_status",
            (asset_id,),
        ).fetchall()
    for row in rows:
        counts[row["review_status"]] = row["n"]
    return counts

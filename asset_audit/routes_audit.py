"""
asset_audit/routes_audit.py

Asset audit endpoints: submission, review, listing and counts.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Submitting an audit requires "assetMaster:view"
- Reviewing requires "auditReport:edit"
- Reading audit logs requires "auditReport:view"
- created_by / updated_by come from the auth context, never from the client
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date
from pathlib import Path as FsPath
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile

try:
    from asset_audit import audit_store
    from asset_audit.auth_context import AuthContext, db_session, require_auth_context
    from asset_audit.catalog import Action
    from asset_audit.config import DEFAULT_PAGE_SIZE, EVIDENCE_DIR, MAX_PAGE_SIZE
    from asset_audit.dependencies import require_access
    from asset_audit.errors import ValidationError
    from asset_audit.evidence import LocalEvidenceStore
    from asset_audit.models import AuditLog
    from asset_audit.proposal import EvidenceBundle, EvidenceFile, build_proposal
    from asset_audit.schemas_audit import (
        AuditCountsResponse,
        AuditLogListResponse,
        PaginationInfo,
        ReviewRequest,
    )
except ModuleNotFoundError:
    import audit_store
    from auth_context import AuthContext, db_session, require_auth_context
    from catalog import Action
    from config import DEFAULT_PAGE_SIZE, EVIDENCE_DIR, MAX_PAGE_SIZE
    from dependencies import require_access
    from errors import ValidationError
    from evidence import LocalEvidenceStore
    from models import AuditLog
    from proposal import EvidenceBundle, EvidenceFile, build_proposal
    from schemas_audit import (
        AuditCountsResponse,
        AuditLogListResponse,
        PaginationInfo,
        ReviewRequest,
    )

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/assetaudit",
    tags=["asset-audit"],
)


def get_evidence_store() -> LocalEvidenceStore:
    return LocalEvidenceStore(FsPath(__file__).resolve().parent / EVIDENCE_DIR)


def _to_evidence(upload: Optional[UploadFile]) -> Optional[EvidenceFile]:
    if upload is None or not upload.filename:
        return None
    return EvidenceFile(
        filename=upload.filename,
        content=upload.file.read(),
        content_type=upload.content_type or "application/octet-stream",
    )


def _parse_changes(raw: Optional[str]) -> dict:
    if not raw:
        return {}
    try:
        changes = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("proposedChanges must be valid JSON") from None
    if not isinstance(changes, dict):
        raise ValidationError("proposedChanges must be a JSON object")
    return changes


@router.post(
    "/add-asset-audit",
    response_model=AuditLog,
    status_code=201,
    dependencies=[Depends(require_access(Action.ASSET_MASTER_VIEW))],
)
def add_asset_audit(
    assetId: Optional[str] = Form(None),
    auditorRemark: Optional[str] = Form(None),
    proposedChanges: Optional[str] = Form(None),
    assetImage: Optional[UploadFile] = File(None),
    auditImage1: Optional[UploadFile] = File(None),
    auditImage2: Optional[UploadFile] = File(None),
    auditImage3: Optional[UploadFile] = File(None),
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
    evidence_store: LocalEvidenceStore = Depends(get_evidence_store),
) -> AuditLog:
    """
    Submit a proposed change for an asset; the log starts out pending.

    The form is re-sanitized here with the same builder the client uses.

    Raises:
        ValidationError(400): Missing assetId, malformed proposedChanges, non-image evidence
        NotFoundError(404): Unknown asset
    """
    bundle = EvidenceBundle(
        asset_image=_to_evidence(assetImage),
        audit_images=[img for img in map(_to_evidence, (auditImage1, auditImage2, auditImage3)) if img],
    )
    payload = build_proposal(
        _parse_changes(proposedChanges),
        bundle,
        asset_id=assetId,
        auditor_remark=auditorRemark,
    )

    # Check the asset before writing any evidence to disk
    audit_store.require_asset(conn, payload.asset_id)

    asset_ref, audit_refs = evidence_store.save_bundle(
        EvidenceBundle(asset_image=payload.asset_image, audit_images=payload.audit_images)
    )

    try:
        return audit_store.insert_audit_log(
            conn,
            payload,
            created_by=ctx.user_id,
            asset_image=asset_ref,
            audit_images=audit_refs,
        )
    except Exception:
        # No log row points at the files, drop them
        evidence_store.discard([asset_ref, *audit_refs])
        raise


@router.put(
    "/review-audit-status/{audit_id}",
    response_model=AuditLog,
    dependencies=[Depends(require_access(Action.AUDIT_REPORT_EDIT))],
)
def review_audit_status(
    request: ReviewRequest,
    audit_id: int = Path(..., description="Audit log ID"),
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
) -> AuditLog:
    """
    Approve or reject a pending audit log.

    Raises:
        ValidationError(400): Unknown reviewStatus or empty rejection remark
        InvalidTransitionError(409): Log already reviewed (including by a concurrent reviewer)
        NotFoundError(404): Unknown audit log
    """
    return audit_store.review_audit_log(conn, audit_id, request.as_contract(), reviewer_id=ctx.user_id)


def _list(conn: sqlite3.Connection, filters: audit_store.AuditLogFilters) -> AuditLogListResponse:
    page = audit_store.list_audit_logs(conn, filters)
    return AuditLogListResponse(
        audit_logs=page.items,
        pagination=PaginationInfo(
            total_entries=page.total_entries,
            entries_per_page=page.entries_per_page,
            current_page=page.current_page,
            total_pages=page.total_pages,
            has_more=page.has_more,
        ),
    )


@router.get(
    "/get-audit-logs",
    response_model=AuditLogListResponse,
    dependencies=[Depends(require_access(Action.AUDIT_REPORT_VIEW))],
)
def get_audit_logs(
    status: Optional[str] = Query(None, description="pending | approved | rejected"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None, min_length=1, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    conn: sqlite3.Connection = Depends(db_session),
) -> AuditLogListResponse:
    filters = audit_store.AuditLogFilters(
        status=status, start_date=start_date, end_date=end_date,
        search=search, page=page, limit=limit,
    )
    return _list(conn, filters)


@router.get(
    "/get-asset-audit-logs/{asset_id}",
    response_model=AuditLogListResponse,
    dependencies=[Depends(require_access(Action.AUDIT_REPORT_VIEW))],
)
def get_asset_audit_logs(
    asset_id: int = Path(..., description="Asset ID"),
    status: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None, min_length=1, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    conn: sqlite3.Connection = Depends(db_session),
) -> AuditLogListResponse:
    filters = audit_store.AuditLogFilters(
        status=status, asset_id=asset_id, start_date=start_date, end_date=end_date,
        search=search, page=page, limit=limit,
    )
    return _list(conn, filters)


@router.get(
    "/view-audit-log/{audit_id}",
    response_model=AuditLog,
    dependencies=[Depends(require_access(Action.AUDIT_REPORT_VIEW))],
)
def view_audit_log(
    audit_id: int = Path(..., description="Audit log ID"),
    conn: sqlite3.Connection = Depends(db_session),
) -> AuditLog:
    return audit_store.get_audit_log(conn, audit_id)


@router.get(
    "/audit-counts",
    response_model=AuditCountsResponse,
    dependencies=[Depends(require_access(Action.AUDIT_REPORT_VIEW))],
)
def audit_counts(
    asset_id: Optional[int] = Query(None, alias="assetId"),
    conn: sqlite3.Connection = Depends(db_session),
) -> AuditCountsResponse:
    counts = audit_store.count_by_status(conn, asset_id)
    return AuditCountsResponse(counts=counts, total=sum(counts.values()))

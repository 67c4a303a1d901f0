"""
asset_audit/schemas_audit.py

Pydantic schemas for the audit review and permission endpoints.

Request bodies keep the camelCase field names the web client sends
(reviewStatus, rejectedRemark); responses use snake_case like the rest of the
API.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

try:
    from asset_audit.models import AuditLog
except ModuleNotFoundError:
    from models import AuditLog


# ========================================================================
# REVIEW SCHEMAS
# ========================================================================

class ReviewRequest(BaseModel):
    """Review decision for one audit log.

    reviewStatus is checked by the state machine rather than here, so an
    unknown value answers with the same error shape as an illegal transition.
    """
    model_config = ConfigDict(populate_by_name=True)

    review_status: str = Field(..., alias="reviewStatus", description="approved | rejected")
    rejected_remark: Optional[str] = Field(None, alias="rejectedRemark", max_length=1000)

    @field_validator("review_status", mode="before")
    @classmethod
    def trim_status(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    def as_contract(self) -> Dict[str, Optional[str]]:
        return {"reviewStatus": self.review_status, "rejectedRemark": self.rejected_remark}


class PaginationInfo(BaseModel):
    total_entries: int = 0
    entries_per_page: int = 10
    current_page: int = 1
    total_pages: int = 0
    has_more: bool = False


class AuditLogListResponse(BaseModel):
    audit_logs: List[AuditLog] = Field(default_factory=list)
    pagination: PaginationInfo


class AuditCountsResponse(BaseModel):
    """Per-status counts for dashboards; every status is always present."""
    counts: Dict[str, int]
    total: int


# ========================================================================
# PERMISSION SCHEMAS
# ========================================================================

class PermissionItem(BaseModel):
    # action stays a plain string so unknown actions reach parse_action()
    # and fail with the offending identifier in the message
    action: str = Field(..., min_length=1, max_length=100)
    effect: Literal["Allow", "Deny"]


class PermissionUpdateRequest(BaseModel):
    permissions: List[PermissionItem]


class PermissionEditRequest(BaseModel):
    """One interactive edit: toggle an action, set a group, or set everything."""
    op: Literal["toggle", "group", "all"]
    action: Optional[str] = None
    group: Optional[str] = None
    effect: Optional[Literal["Allow", "Deny"]] = None


class PermissionSetResponse(BaseModel):
    user_id: int
    catalog_version: int
    all_access: bool
    permissions: List[PermissionItem]


class CatalogAction(BaseModel):
    action: str
    label: str


class CatalogGroup(BaseModel):
    key: str
    label: str
    actions: List[CatalogAction]


class PermissionCatalogResponse(BaseModel):
    version: int
    all_access: CatalogAction
    groups: List[CatalogGroup]

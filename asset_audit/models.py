"""
asset_audit/models.py

Domain records: users with their stored permissions, and audit logs with the
invariants every stored or transitioned log must satisfy.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

try:
    from asset_audit.catalog import Action, Effect
except ModuleNotFoundError:
    from catalog import Action, Effect


# Enums
class ReviewStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


TERMINAL_STATUSES = frozenset({ReviewStatus.approved, ReviewStatus.rejected})


class UserRole(str, Enum):
    superadmin = "superadmin"
    admin = "admin"
    auditor = "auditor"
    supervisor = "supervisor"
    user = "user"


# Models
class Permission(BaseModel):
    action: Action
    effect: Effect


class User(BaseModel):
    id: int
    user_name: str
    email: str
    role: UserRole = UserRole.user
    permissions: List[Dict[str, Any]] = Field(default_factory=list)  # stored as-is, normalize before use
    is_active: bool = True


class AuditLog(BaseModel):
    """One proposed-change submission for one asset and its review outcome."""

    id: int
    asset_id: int
    created_by: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None
    review_status: ReviewStatus = ReviewStatus.pending
    proposed_changes: Dict[str, Any] = Field(default_factory=dict)
    auditor_remark: str = ""
    rejected_remark: Optional[str] = None
    asset_image: Optional[str] = None
    audit_images: List[str] = Field(default_factory=list, max_length=3)

    @field_validator("proposed_changes")
    @classmethod
    def no_blank_changes(cls, v):
        blank = [k for k, value in v.items() if value is None or value == ""]
        if blank:
            raise ValueError(f"proposed_changes must not carry empty values: {blank}")
        return v

    @model_validator(mode="after")
    def rejected_remark_iff_rejected(self):
        has_remark = bool(self.rejected_remark and self.rejected_remark.strip())
        if has_remark != (self.review_status == ReviewStatus.rejected):
            raise ValueError("rejected_remark must be set exactly when review_status is rejected")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.review_status in TERMINAL_STATUSES

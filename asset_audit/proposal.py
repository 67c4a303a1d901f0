"""
asset_audit/proposal.py

Turns an auditor's edited-asset form into a sanitized audit submission.

The auditor's form starts with every editable asset field present and blank;
only the fields they actually filled in may reach proposed_changes. The same
builder runs on both sides of the wire: the client uses it to package the
submission, the submission endpoint re-runs it on what it received.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

try:
    from asset_audit.config import MAX_AUDIT_IMAGES, MAX_AUDITOR_REMARK
    from asset_audit.errors import ValidationError
except ModuleNotFoundError:
    from config import MAX_AUDIT_IMAGES, MAX_AUDITOR_REMARK
    from errors import ValidationError


@dataclass(frozen=True)
class EvidenceFile:
    """One binary evidence attachment (a photo of the asset or of the audit)."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class EvidenceBundle:
    asset_image: Optional[EvidenceFile] = None
    audit_images: Sequence[EvidenceFile] = ()


@dataclass(frozen=True)
class AuditSubmissionPayload:
    asset_id: str
    auditor_remark: str
    proposed_changes: Dict[str, Any]
    asset_image: Optional[EvidenceFile] = None
    audit_images: Tuple[EvidenceFile, ...] = ()

    def to_form(self) -> Dict[str, str]:
        """Multipart text fields, proposedChanges serialized as JSON."""
        return {
            "assetId": self.asset_id,
            "auditorRemark": self.auditor_remark,
            "proposedChanges": json.dumps(self.proposed_changes),
        }

    def files(self) -> List[Tuple[str, EvidenceFile]]:
        """Named attachments: assetImage, auditImage1..auditImage3."""
        named = []
        if self.asset_image is not None:
            named.append(("assetImage", self.asset_image))
        for i, image in enumerate(self.audit_images, start=1):
            named.append((f"auditImage{i}", image))
        return named


def normalize_year(value: Any) -> int:
    """
    Reduce a year picker value to a plain integer year.

    Accepts an int, a numeric string ("2019"), an ISO date or datetime string
    ("2019-06-01", "2019-01-01T00:00:00.000Z") or a date/datetime.

    The year is read in the offset the value carries, never converted to UTC:
    a picker in UTC+5:30 should send "2019-01-01T00:00:00+05:30" (or the bare
    date), not its UTC rendering "2018-12-31T18:30:00Z".

    Raises:
        ValidationError: If no year can be read from the value
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid year: {value!r}")
    if isinstance(value, (datetime, date)):
        return value.year
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).year
        except ValueError:
            pass
    raise ValidationError(f"Invalid year: {value!r}")


def sanitize_changes(raw_edits: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Clean the edited fields: year reduced to an int, "" and None values dropped.
    """
    changes = dict(raw_edits or {})
    if changes.get("year"):
        changes["year"] = normalize_year(changes["year"])
    return {k: v for k, v in changes.items() if v is not None and v != ""}


def build_proposal(
    raw_edits: Optional[Mapping[str, Any]],
    evidence: Optional[EvidenceBundle] = None,
    *,
    asset_id: Any,
    auditor_remark: Optional[str] = None,
) -> AuditSubmissionPayload:
    """
    Build a transmittable audit proposal.

    Args:
        raw_edits: Edited asset fields as they sit in the form (blank fields included)
        evidence: Optional current-asset image and up to three audit images
        asset_id: The audited asset (required)
        auditor_remark: Free text, defaults to ""

    Returns:
        AuditSubmissionPayload

    Raises:
        ValidationError: Missing asset_id, too many audit images, remark too
            long, or an unreadable year
    """
    if asset_id is None or not str(asset_id).strip():
        raise ValidationError("assetId is required")

    remark = auditor_remark or ""
    if len(remark) > MAX_AUDITOR_REMARK:
        raise ValidationError(f"Auditor remark must be at most {MAX_AUDITOR_REMARK} characters")

    evidence = evidence or EvidenceBundle()
    audit_images = tuple(img for img in evidence.audit_images if img is not None)
    if len(audit_images) > MAX_AUDIT_IMAGES:
        raise ValidationError(f"At most {MAX_AUDIT_IMAGES} audit images can be attached")

    return AuditSubmissionPayload(
        asset_id=str(asset_id).strip(),
        auditor_remark=remark,
        proposed_changes=sanitize_changes(raw_edits),
        asset_image=evidence.asset_image,
        audit_images=audit_images,
    )

"""
asset_audit/evidence.py

Local-disk store for audit evidence images.

Turns an uploaded attachment into a stored reference string. Only images are
accepted; the reference is a path relative to the store root.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

try:
    from asset_audit.errors import ValidationError
    from asset_audit.proposal import EvidenceBundle, EvidenceFile
except ModuleNotFoundError:
    from errors import ValidationError
    from proposal import EvidenceBundle, EvidenceFile

logger = logging.getLogger(__name__)


class LocalEvidenceStore:
    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    @staticmethod
    def validate(evidence: EvidenceFile) -> None:
        """
        Raises:
            ValidationError: Not an image, or empty
        """
        if not (evidence.content_type or "").startswith("image/"):
            raise ValidationError(f"Evidence must be an image, got {evidence.content_type!r}")
        if not evidence.content:
            raise ValidationError("Evidence file is empty")

    def save(self, evidence: EvidenceFile) -> str:
        """
        Write one attachment and return its reference.

        Raises:
            ValidationError: Not an image, or empty
        """
        self.validate(evidence)

        suffix = Path(evidence.filename or "").suffix.lower()
        name = f"{uuid.uuid4().hex}{suffix}"
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / name).write_bytes(evidence.content)
        logger.debug("[AUDIT] Stored evidence %s (%d bytes)", name, len(evidence.content))
        return name

    def save_bundle(self, bundle: EvidenceBundle) -> Tuple[Optional[str], List[str]]:
        """
        Store the current-asset image and the audit images of one submission.

        Every attachment is validated before the first write, so a bad file
        leaves nothing on disk.

        Returns:
            (asset image reference or None, audit image references)

        Raises:
            ValidationError: Any attachment is not an image, or empty
        """
        files = [f for f in (bundle.asset_image, *bundle.audit_images) if f is not None]
        for evidence in files:
            self.validate(evidence)

        asset_ref: Optional[str] = None
        audit_refs: List[str] = []
        try:
            if bundle.asset_image is not None:
                asset_ref = self.save(bundle.asset_image)
            for image in bundle.audit_images:
                audit_refs.append(self.save(image))
        except OSError:
            self.discard([asset_ref, *audit_refs])
            raise
        return asset_ref, audit_refs

    def discard(self, references: Iterable[Optional[str]]) -> None:
        """Remove stored attachments; missing files are ignored."""
        for reference in references:
            if reference:
                self.path_for(reference).unlink(missing_ok=True)
                logger.debug("[AUDIT] Discarded evidence %s", reference)

    def path_for(self, reference: str) -> Path:
        return self.root / Path(reference).name

"""
asset_audit/errors.py

Error kinds raised by the access-control and audit core.

Every error carries the HTTP status the API layer answers with, so routes can
let them propagate and main.py renders them in one place. None of these are
fatal: the caller corrects its input (or re-fetches state) and calls again.
"""

from __future__ import annotations


class AuditCoreError(Exception):
    """Base class for recoverable core errors."""

    status_code = 500

    def __init__(self, message: str = "Something went wrong"):
        super().__init__(message)
        self.message = message


class ValidationError(AuditCoreError):
    """Missing required field, empty rejection remark, malformed value."""

    status_code = 400


class UnknownActionError(ValidationError):
    """An action identifier that is not part of the permission catalog."""

    status_code = 422

    def __init__(self, action: object):
        super().__init__(f"Unknown permission action: {action!r}")
        self.action = action


class InvalidTransitionError(AuditCoreError):
    """Review attempted on a log that is no longer pending."""

    status_code = 409


class NotFoundError(AuditCoreError):
    """Unknown asset, audit log or user reference."""

    status_code = 404


class AccessDeniedError(AuditCoreError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)

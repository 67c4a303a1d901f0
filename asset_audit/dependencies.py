"""
asset_audit/dependencies.py

Reusable FastAPI dependencies for permission enforcement.
"""

from __future__ import annotations

import logging
from typing import Callable, Union

from fastapi import Depends

try:
    from asset_audit.auth_context import AuthContext, require_auth_context
    from asset_audit.catalog import Action
    from asset_audit.errors import AccessDeniedError
    from asset_audit.rbac import can_access_all, parse_action
except ModuleNotFoundError:
    from auth_context import AuthContext, require_auth_context
    from catalog import Action
    from errors import AccessDeniedError
    from rbac import can_access_all, parse_action

logger = logging.getLogger(__name__)


def require_access(*actions: Union[Action, str]) -> Callable:
    """
    FastAPI dependency factory: the acting user must be allowed every action.

    Actions are resolved against the catalog when the route is declared, so a
    typo fails at import time rather than denying everyone at runtime.

    Usage in routes:
        @router.put("/{audit_id}", dependencies=[Depends(require_access(Action.AUDIT_REPORT_EDIT))])

    Raises:
        AccessDeniedError(403): If any action is not Allow for the user
    """
    required = tuple(parse_action(a) for a in actions)

    def _check_access(ctx: AuthContext = Depends(require_auth_context)) -> AuthContext:
        if not can_access_all(ctx.permissions, *required):
            logger.info(
                "[AUTHZ] Access denied: user_id=%s, role=%s, required=%s",
                ctx.user_id, ctx.role, [a.value for a in required],
            )
            raise AccessDeniedError()

        logger.debug("[AUTHZ] Access granted: user_id=%s, required=%s", ctx.user_id, [a.value for a in required])
        return ctx

    return _check_access

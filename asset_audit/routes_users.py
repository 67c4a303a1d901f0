"""
asset_audit/routes_users.py

Permission catalog and per-user permission endpoints.

Security guarantees:
- Reading the catalog or a user's permissions requires "userMaster:view"
- Changing permissions requires "userMaster:edit"
- Unknown actions in an update are rejected with 422, never silently stored
"""

from __future__ import annotations

import logging
import sqlite3

from fastapi import APIRouter, Depends, Path

try:
    from asset_audit import user_store
    from asset_audit.auth_context import AuthContext, db_session, require_auth_context
    from asset_audit.catalog import CATALOG_VERSION, GROUPS, Action, humanize
    from asset_audit.dependencies import require_access
    from asset_audit.permission_editor import apply_edit
    from asset_audit.rbac import PermissionSet, has_full_access, parse_action, to_permission_list
    from asset_audit.schemas_audit import (
        CatalogAction,
        CatalogGroup,
        PermissionCatalogResponse,
        PermissionEditRequest,
        PermissionItem,
        PermissionSetResponse,
        PermissionUpdateRequest,
    )
except ModuleNotFoundError:
    import user_store
    from auth_context import AuthContext, db_session, require_auth_context
    from catalog import CATALOG_VERSION, GROUPS, Action, humanize
    from dependencies import require_access
    from permission_editor import apply_edit
    from rbac import PermissionSet, has_full_access, parse_action, to_permission_list
    from schemas_audit import (
        CatalogAction,
        CatalogGroup,
        PermissionCatalogResponse,
        PermissionEditRequest,
        PermissionItem,
        PermissionSetResponse,
        PermissionUpdateRequest,
    )

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/users",
    tags=["permissions"],
)


def _catalog_action(action: Action) -> CatalogAction:
    return CatalogAction(action=action.value, label=humanize(action))


def _response(user_id: int, permissions: PermissionSet) -> PermissionSetResponse:
    return PermissionSetResponse(
        user_id=user_id,
        catalog_version=CATALOG_VERSION,
        all_access=has_full_access(permissions),
        permissions=[PermissionItem(**p) for p in to_permission_list(permissions)],
    )


@router.get(
    "/permission-catalog",
    response_model=PermissionCatalogResponse,
    dependencies=[Depends(require_access(Action.USER_MASTER_VIEW))],
)
def permission_catalog() -> PermissionCatalogResponse:
    return PermissionCatalogResponse(
        version=CATALOG_VERSION,
        all_access=_catalog_action(Action.ALL_ACCESS),
        groups=[
            CatalogGroup(key=g.key, label=g.label, actions=[_catalog_action(a) for a in g.actions])
            for g in GROUPS
        ],
    )


@router.get(
    "/{user_id}/permissions",
    response_model=PermissionSetResponse,
    dependencies=[Depends(require_access(Action.USER_MASTER_VIEW))],
)
def get_permissions(
    user_id: int = Path(..., description="User ID"),
    conn: sqlite3.Connection = Depends(db_session),
) -> PermissionSetResponse:
    return _response(user_id, user_store.get_permission_set(conn, user_id))


@router.put(
    "/{user_id}/permissions",
    response_model=PermissionSetResponse,
    dependencies=[Depends(require_access(Action.USER_MASTER_EDIT))],
)
def update_permissions(
    request: PermissionUpdateRequest,
    user_id: int = Path(..., description="User ID"),
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
) -> PermissionSetResponse:
    """
    Replace a user's permission set.

    The body is checked against the catalog, re-normalized and persisted as-is.
    allAccess is stored as sent; the editor, not this endpoint, keeps it
    derived.

    Raises:
        UnknownActionError(422): An action outside the catalog
        NotFoundError(404): Unknown user
    """
    pairs = [(parse_action(item.action), item.effect) for item in request.permissions]
    saved = user_store.save_permissions(conn, user_id, pairs, updated_by=ctx.user_id)
    return _response(user_id, saved)


@router.post(
    "/{user_id}/permissions/edit",
    response_model=PermissionSetResponse,
    dependencies=[Depends(require_access(Action.USER_MASTER_EDIT))],
)
def edit_permissions(
    request: PermissionEditRequest,
    user_id: int = Path(..., description="User ID"),
    ctx: AuthContext = Depends(require_auth_context),
    conn: sqlite3.Connection = Depends(db_session),
) -> PermissionSetResponse:
    """
    Apply one editor operation (toggle / group / all) server-side and persist.

    Raises:
        ValidationError(400): Incomplete or unknown operation
        UnknownActionError(422): Unknown action
        NotFoundError(404): Unknown user
    """
    current = user_store.get_permission_set(conn, user_id)
    edited = apply_edit(current, request.model_dump(exclude_none=True))
    saved = user_store.save_permissions(conn, user_id, edited, updated_by=ctx.user_id)
    logger.debug("[PERMS] Edit %s applied to user_id=%s", request.op, user_id)
    return _response(user_id, saved)

"""
asset_audit/user_store.py

User lookup and permission persistence.

Permission sets are stored as a JSON list on the user row and always written
already normalized, so what the editor produced is what the next request
evaluates.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional

try:
    from asset_audit.errors import NotFoundError
    from asset_audit.models import User
    from asset_audit.rbac import PermissionSet, normalize, permissions_for_role, to_permission_list
except ModuleNotFoundError:
    from errors import NotFoundError
    from models import User
    from rbac import PermissionSet, normalize, permissions_for_role, to_permission_list

logger = logging.getLogger(__name__)


def load_permissions(raw) -> list:
    try:
        value = json.loads(raw) if raw else []
    except (json.JSONDecodeError, TypeError):
        return []
    return value if isinstance(value, list) else []


def get_user(conn: sqlite3.Connection, user_id: int) -> User:
    """
    Raises:
        NotFoundError: If the user does not exist
    """
    row = conn.execute(
        "SELECT id, user_name, email, role, permissions, is_active FROM users WHERE id = ?",
        (user_id,),
    ).fetchone()
    if row is None:
        raise NotFoundError("User not found")
    return User(
        id=row["id"],
        user_name=row["user_name"],
        email=row["email"],
        role=row["role"] or "user",
        permissions=load_permissions(row["permissions"]),
        is_active=bool(row["is_active"]),
    )


def get_permission_set(conn: sqlite3.Connection, user_id: int) -> PermissionSet:
    return normalize(get_user(conn, user_id).permissions)


def save_permissions(
    conn: sqlite3.Connection,
    user_id: int,
    permissions: Any,
    updated_by: Optional[int] = None,
) -> PermissionSet:
    """
    Persist a user's permission set verbatim (after re-normalizing it).

    `permissions` may be any shape normalize() accepts.

    Last write wins; concurrent editors of the same user are not reconciled.

    Raises:
        NotFoundError: If the user does not exist
    """
    normalized = normalize(permissions)
    cur = conn.execute(
        "UPDATE users SET permissions = ?, updated_at = ?, updated_by = ? WHERE id = ?",
        (
            json.dumps(to_permission_list(normalized)),
            datetime.now(timezone.utc).isoformat(),
            updated_by,
            user_id,
        ),
    )
    if cur.rowcount == 0:
        conn.rollback()
        raise NotFoundError("User not found")
    conn.commit()
    logger.info("[PERMS] Permissions updated: user_id=%s, by=%s", user_id, updated_by)
    return normalized


def create_user(
    conn: sqlite3.Connection,
    user_name: str,
    email: str,
    role: str = "user",
) -> User:
    """Create a user with the default permission set of their role."""
    cur = conn.execute(
        "INSERT INTO users (user_name, email, role, permissions) VALUES (?, ?, ?, ?)",
        (user_name, email, role, json.dumps(to_permission_list(permissions_for_role(role)))),
    )
    conn.commit()
    logger.info("[PERMS] Created user_id=%s with %s defaults", cur.lastrowid, role)
    return get_user(conn, cur.lastrowid)

"""
asset_audit/auth_context.py

Shared request context primitives for FastAPI dependency injection.

Contains:
- db_session: per-request SQLite connection dependency
- verify_token: JWT bearer token verification (tokens are issued elsewhere)
- AuthContext: acting user with their normalized permission set
- require_auth_context: FastAPI dependency for auth enforcement

This module MUST NOT import asset_audit.main to avoid circular dependencies.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, Iterator

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

try:
    from asset_audit.catalog import Action, Effect
    from asset_audit.config import ALGORITHM, SECRET_KEY
    from asset_audit.db import get_db
    from asset_audit.rbac import normalize
    from asset_audit.user_store import load_permissions
except ModuleNotFoundError:
    from catalog import Action, Effect
    from config import ALGORITHM, SECRET_KEY
    from db import get_db
    from rbac import normalize
    from user_store import load_permissions

logger = logging.getLogger(__name__)

security = HTTPBearer()


# ---------------------------------------------------------
# DB Dependency
# ---------------------------------------------------------
def db_session() -> Iterator[sqlite3.Connection]:
    """One connection per request, closed when the response is done."""
    conn = get_db()
    try:
        yield conn
    finally:
        conn.close()


# ---------------------------------------------------------
# JWT Token Verification
# ---------------------------------------------------------
def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Acting user for a request, derived from the verified token and the users
    table. The permission set is normalized on the way in, so evaluators
    always see one entry per catalog action.
    """
    user_id: int
    user_name: str
    email: str
    role: str
    permissions: Dict[Action, Effect]


def require_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    conn: sqlite3.Connection = Depends(db_session),
) -> AuthContext:
    """
    Auth context dependency for protected routes.

    Raises:
        HTTPException(401): If token is invalid, expired, or user not found
        HTTPException(403): If user is inactive
    """
    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")

    if not user_id:
        logger.info("[AUTH] Missing user id in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    row = conn.execute(
        "SELECT id, user_name, email, role, permissions, is_active FROM users WHERE id = ?",
        (user_id,),
    ).fetchone()

    if not row:
        logger.info("[AUTH] User not found: user_id=%s", user_id)
        raise HTTPException(status_code=401, detail="User not found")

    if not row["is_active"]:
        logger.info("[AUTH] Inactive user attempted access: user_id=%s", user_id)
        raise HTTPException(status_code=403, detail="Account inactive")

    ctx = AuthContext(
        user_id=row["id"],
        user_name=row["user_name"],
        email=row["email"],
        role=row["role"] or "user",
        permissions=normalize(load_permissions(row["permissions"])),
    )
    logger.debug("[AUTH] Authenticated: user_id=%s, role=%s", ctx.user_id, ctx.role)
    return ctx

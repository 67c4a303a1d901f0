# asset_audit/db.py
# SQLite connection helper and schema for the audit core

import logging
import sqlite3
from pathlib import Path as FsPath
from typing import Optional

try:
    from asset_audit.config import DATABASE_PATH
except ModuleNotFoundError:
    from config import DATABASE_PATH

logger = logging.getLogger(__name__)

# Relative paths resolve next to the package, absolute ones are kept as-is
DB_PATH = str(FsPath(__file__).resolve().parent / DATABASE_PATH)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_name TEXT NOT NULL,
        email TEXT UNIQUE NOT NULL,
        role TEXT DEFAULT 'user',
        permissions TEXT DEFAULT '[]',
        is_active INTEGER DEFAULT 1,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT,
        updated_by INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS assets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        location_id INTEGER,
        status INTEGER DEFAULT 1,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS asset_audit_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        asset_id INTEGER NOT NULL REFERENCES assets(id),
        created_by INTEGER NOT NULL REFERENCES users(id),
        updated_by INTEGER,
        review_status TEXT NOT NULL DEFAULT 'pending'
            CHECK (review_status IN ('pending', 'approved', 'rejected')),
        proposed_changes TEXT NOT NULL DEFAULT '{}',
        auditor_remark TEXT NOT NULL DEFAULT '',
        rejected_remark TEXT,
        asset_image TEXT,
        audit_image_1 TEXT,
        audit_image_2 TEXT,
        audit_image_3 TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_status ON asset_audit_logs(review_status)",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_asset ON asset_audit_logs(asset_id, created_at)",
)


def get_db(path: Optional[str] = None) -> sqlite3.Connection:
    """
    Create and return a SQLite connection with Row factory.
    Callers close it (one connection per request).
    """
    conn = sqlite3.connect(path or DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if missing. Safe to run multiple times."""
    cur = conn.cursor()
    for statement in SCHEMA:
        cur.execute(statement)
    conn.commit()
    logger.debug("[DB] Schema ready")

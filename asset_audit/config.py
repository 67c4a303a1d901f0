# asset_audit/config.py
# Environment-aware configuration for the asset audit backend

import logging
import os
from typing import Literal

logger = logging.getLogger(__name__)

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# Bearer token verification (tokens are issued by the login service)
SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
ALGORITHM = "HS256"

# Storage
DATABASE_PATH = os.environ.get("DATABASE_PATH", "asset_audit.db")
EVIDENCE_DIR = os.environ.get("EVIDENCE_DIR", "evidence")

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG" if IS_DEV else "INFO").upper()

# Audit submissions
MAX_AUDITOR_REMARK = int(os.environ.get("MAX_AUDITOR_REMARK", "1000"))
MAX_AUDIT_IMAGES = 3

# Listing
DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "100"))

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:5173",  # Vite dev server
    "http://127.0.0.1:5173",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())

logger.info("[CONFIG] Environment: %s", ENV)
logger.info("[CONFIG] Database: %s", DATABASE_PATH)
logger.info("[CONFIG] Evidence dir: %s", EVIDENCE_DIR)

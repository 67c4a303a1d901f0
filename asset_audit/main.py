# ---------------------------------------------------------
# asset_audit/main.py
# Asset inventory - access control and content audit backend
#
# Run: uvicorn asset_audit.main:app --reload (from repo root)
#
# - FastAPI + SQLite
# - /api/v1/assetaudit/* : audit submission, review, listing, counts
# - /api/v1/users/*      : permission catalog and per-user permission sets
# ---------------------------------------------------------

from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

try:
    from asset_audit.config import CORS_ORIGINS, IS_PROD, LOG_LEVEL
    from asset_audit.db import get_db, init_db
    from asset_audit.errors import AuditCoreError
    from asset_audit.routes_audit import router as audit_router
    from asset_audit.routes_users import router as users_router
except ModuleNotFoundError:
    from config import CORS_ORIGINS, IS_PROD, LOG_LEVEL
    from db import get_db, init_db
    from errors import AuditCoreError
    from routes_audit import router as audit_router
    from routes_users import router as users_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    conn = get_db()
    try:
        init_db(conn)
    finally:
        conn.close()
    yield


app = FastAPI(title="Asset Audit Backend", version="0.1", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuditCoreError)
def handle_core_error(request: Request, exc: AuditCoreError) -> JSONResponse:
    logger.info("[API] %s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"statusCode": exc.status_code, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies and params answer like any other ValidationError
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg', 'Invalid value')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    logger.info("[API] %s %s -> 400: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"statusCode": 400, "message": message})


@app.exception_handler(sqlite3.Error)
def handle_db_error(request: Request, exc: sqlite3.Error) -> JSONResponse:
    # Log the details, never expose them
    logger.error("[DB] Error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"statusCode": 500, "message": "Database error"})


app.include_router(audit_router)
app.include_router(users_router)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}

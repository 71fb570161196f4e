"""
backend/app/main.py

Purpose:
    FastAPI application bootstrap: logging and database lifecycle, middleware
    and router wiring, and the mapping of domain errors to HTTP responses.

Dependencies:
    - app.database
    - app.routers.tips
    - app.routers.admin_tips
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

import app.database as _db
from app.config import settings
from app.database import close_db, connect_db
from app.middleware.logging import StructuredLoggingMiddleware, setup_logging
from app.services.tip_errors import (
    TipNotFoundError,
    TipsAlreadyExistError,
    TipStorageError,
    TipValidationError,
)

logger = logging.getLogger("dailytips")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()
    if not settings.MONGO_TRANSACTIONS_ENABLED:
        logger.warning("Transactions disabled: overwrites are not atomic for concurrent readers")
    if not settings.ADMIN_API_KEY:
        logger.info("ADMIN_API_KEY not set; admin write endpoints are disabled")

    yield

    await close_db()


app = FastAPI(
    title="Daily Tips",
    description="Daily sports betting tips: validation, storage, search and export",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Admin-Key"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from app.routers.tips import router as tips_router
from app.routers.admin_tips import router as admin_tips_router

app.include_router(tips_router)
app.include_router(admin_tips_router)


@app.exception_handler(TipValidationError)
async def tip_validation_handler(request: Request, exc: TipValidationError):
    logger.warning("Validation failed on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": "Validation failed.", "errors": exc.as_list()})


@app.exception_handler(TipNotFoundError)
async def tip_not_found_handler(request: Request, exc: TipNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(TipsAlreadyExistError)
async def tips_exist_handler(request: Request, exc: TipsAlreadyExistError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "dateISO": exc.date_iso})


@app.exception_handler(TipStorageError)
async def tip_storage_handler(request: Request, exc: TipStorageError):
    logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check -- verifies the DB connection."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
    }

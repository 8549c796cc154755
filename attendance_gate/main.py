"""
Attendance Gate Backend - Main Application Entry Point
"""
import logging
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from attendance_gate.api.router import api_router
from attendance_gate.core.config import settings
from attendance_gate.core.errors import (
    AttendanceError,
    StorageError,
    attendance_error_handler,
    http_exception_handler,
    validation_exception_handler,
    storage_exception_handler,
    generic_exception_handler,
)
from attendance_gate.core.logging import setup_logging
from attendance_gate.db.init_db import ensure_initial_admin
from attendance_gate.db.session import SessionLocal

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


def _mask_database_url(url: str) -> str:
    """Mask password in DATABASE_URL for safe logging; show full path for sqlite."""
    try:
        parsed = urlparse(url)
        if parsed.scheme.startswith("sqlite"):
            return url
        if parsed.password:
            netloc = f"{parsed.username}:****@{parsed.hostname or ''}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        return "***"
    return url


app = FastAPI(
    title="Attendance Gate Backend",
    description="Employee attendance with device binding and network restrictions",
    version=settings.VERSION or "1.0.0"
)

# Configure CORS - must be before other middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


async def lock_timeout_handler(request: Request, exc: TimeoutError) -> JSONResponse:
    """A per-employee lock wait that timed out is reported as a retryable 503."""
    logger.warning("Lock wait timed out on %s: %s", request.url.path, exc)
    return await attendance_error_handler(request, StorageError("Server busy, please retry"))


# Register exception handlers
app.add_exception_handler(AttendanceError, attendance_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(SQLAlchemyError, storage_exception_handler)
app.add_exception_handler(TimeoutError, lock_timeout_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include all API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def startup_log_config() -> None:
    """Log DATABASE_URL at startup so it can be verified against Alembic."""
    logger.info("DATABASE_URL (app): %s", _mask_database_url(settings.DATABASE_URL))
    if settings.get_company_allowed_ips_list():
        logger.info("Company allowlist from environment: %s", settings.get_company_allowed_ips_list())


@app.on_event("startup")
def bootstrap_initial_admin() -> None:
    """
    Create the initial admin from INITIAL_ADMIN_EMAIL / INITIAL_ADMIN_PASSWORD
    if no admin exists, so the system always has someone who can review devices.
    """
    if not settings.INITIAL_ADMIN_EMAIL or not settings.INITIAL_ADMIN_PASSWORD:
        logger.info("INITIAL_ADMIN_EMAIL/INITIAL_ADMIN_PASSWORD not set, skipping admin bootstrap")
        return
    db = SessionLocal()
    try:
        ensure_initial_admin(db, settings.INITIAL_ADMIN_EMAIL, settings.INITIAL_ADMIN_PASSWORD)
    except OperationalError as e:
        db.rollback()
        # Tables might not exist yet when running against an unmigrated database
        if "no such table" in str(e).lower() or "does not exist" in str(e).lower():
            logger.warning("Database tables not ready yet, skipping initial bootstrap. Run alembic upgrade head")
        else:
            logger.error("Database error during admin bootstrap: %s", e)
    finally:
        db.close()

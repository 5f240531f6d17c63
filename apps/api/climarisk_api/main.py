"""ClimaRisk API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

import redis
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy import text
from sqlalchemy.orm import Session

from climarisk_api import __version__
from climarisk_api.db.session import SessionLocal, get_db
from climarisk_api.errors import (
    AppendConflictError,
    InvalidPayloadError,
    NotFoundError,
    UpstreamUnavailable,
)
from climarisk_api.ledger.service import LedgerService
from climarisk_api.middleware.correlation import CorrelationIDMiddleware
from climarisk_api.routes import commands, reads
from climarisk_api.settings import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting ClimaRisk API...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise

    db = SessionLocal()
    try:
        LedgerService(db).ensure_genesis()
    except Exception as e:
        # Readiness reports the ledger as unavailable until this succeeds
        logger.error(f"Ledger bootstrap failed: {e}", exc_info=True)
    finally:
        db.close()

    yield
    logger.info("Shutting down ClimaRisk API...")


app = FastAPI(
    title="ClimaRisk API",
    description="Tamper-evident weather risk decisions",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(commands.router)
app.include_router(reads.router)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"ok": False, "error": "entity not found", "entity_id": exc.entity_id},
    )


@app.exception_handler(UpstreamUnavailable)
async def upstream_handler(request: Request, exc: UpstreamUnavailable):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ok": False, "error": "upstream unavailable", "detail": str(exc)},
    )


@app.exception_handler(AppendConflictError)
async def append_conflict_handler(request: Request, exc: AppendConflictError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"ok": False, "error": "ledger append conflict", "detail": str(exc)},
    )


@app.exception_handler(InvalidPayloadError)
async def invalid_payload_handler(request: Request, exc: InvalidPayloadError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"ok": False, "error": "invalid payload", "detail": exc.detail},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "climarisk-api",
        "version": __version__,
    }


@app.get("/ready")
def readiness_check(db: Session = Depends(get_db)):
    """Readiness check endpoint (verifies dependencies)."""
    checks = {
        "database": False,
        "ledger": False,
        "broker": None,  # None if not required, True/False if required
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")

    if checks["database"]:
        try:
            checks["ledger"] = LedgerService(db).last_event() is not None
        except Exception as e:
            logger.error(f"Ledger check failed: {e}")

    if not settings.is_dev_environment:
        try:
            redis.from_url(settings.redis_url).ping()
            checks["broker"] = True
        except Exception as e:
            logger.error(f"Broker check failed: {e}")
            checks["broker"] = False

    required = [name for name, value in checks.items() if value is not None]
    all_ready = all(checks[name] for name in required)

    return JSONResponse(
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "ClimaRisk API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "audit": "/api/read/audit/verify",
    }

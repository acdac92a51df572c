"""EcoSangam MRV API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ecosangam_api.db.session import SessionLocal
from ecosangam_api.errors import DomainError
from ecosangam_api.middleware.correlation import CorrelationIDMiddleware
from ecosangam_api.routes import auth, credits, measurements, monitoring, projects, verifications
from ecosangam_api.routes.deps import domain_error_handler
from ecosangam_api.settings import get_settings
from ecosangam_api.storage.kv import get_kv_store

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting EcoSangam API...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise
    logger.info(f"Environment: {settings.environment}, key-value backend: {settings.kv_backend}")

    yield
    logger.info("Shutting down EcoSangam API...")


# Create FastAPI app
app = FastAPI(
    title="EcoSangam MRV API",
    description="Monitoring, reporting and verification for blue-carbon restoration projects",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

app.add_exception_handler(DomainError, domain_error_handler)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(auth.router)
app.include_router(projects.router)
app.include_router(measurements.router)
app.include_router(verifications.router)
app.include_router(credits.router)
app.include_router(monitoring.router)


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "ecosangam-api",
        "version": "0.1.0",
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint (verifies database and key-value store)."""
    checks = {"database": False, "kv_store": False}

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    checks["kv_store"] = get_kv_store().ping()

    all_ready = all(checks.values())
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
        "service": "EcoSangam MRV API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }

"""
Intake API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- Expiring stores, rate limiter and verification code service
- Upload backend resolution
- Background sweep scheduler
- CORS middleware, API routing and health checks
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from intake.api import api_router
from intake.core.config import settings
from intake.core.database import async_session_maker, close_db, init_db
from intake.core.kv_store import build_store
from intake.core.rate_limit import RateLimiter
from intake.core.redis import close_redis, get_redis, init_redis
from intake.core.scheduler import (
    clear_registry,
    list_registered_jobs,
    pause_job,
    resume_job,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from intake.modules.applications.jobs import register_application_jobs
from intake.modules.applications.verification import VerificationCodeService
from intake.modules.uploads.backends import LOCAL_PUBLIC_PREFIX, LocalDiskBackend
from intake.modules.uploads.resolver import resolve_upload_backend

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Redis is optional: without it rate limits and verification codes live
    in process memory. The database is required in production.
    """
    logger.info(f"Starting Intake API in {settings.python_env} mode...")

    try:
        await init_redis()
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.warning(f"[FAIL] Redis connection failed, using in-memory stores: {e}")

    try:
        await init_db()
        logger.info("[OK] Database connected")
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    redis = get_redis()
    app.state.rate_limiter = RateLimiter(build_store(redis, "rate_limit"))
    app.state.verification_codes = VerificationCodeService(
        build_store(redis, "verification_code"),
        enabled=settings.enable_email_verification,
    )

    backend = resolve_upload_backend(settings)
    app.state.upload_backend = backend
    if isinstance(backend, LocalDiskBackend):
        backend.base_dir.mkdir(parents=True, exist_ok=True)
        app.mount(
            LOCAL_PUBLIC_PREFIX,
            StaticFiles(directory=backend.base_dir),
            name="uploads",
        )

    try:
        register_application_jobs(app.state.rate_limiter, app.state.verification_codes)
        await start_scheduler()
        logger.info("[OK] Background scheduler started")
    except Exception as e:
        logger.error(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    logger.info("Shutting down Intake API...")

    await stop_scheduler()
    clear_registry()
    await close_redis()
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="Intake API",
    description="Applicant intake: profiles, video submissions and reviewer scoring",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health_check(response: Response) -> dict:
    """
    Health check for container orchestration.

    - healthy: database reachable and storage configured
    - degraded: database reachable, no storage backend
    - unhealthy (503): database unreachable
    """
    checks: dict[str, dict] = {}

    started = time.perf_counter()
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = {
            "status": "ok",
            "latency_ms": round((time.perf_counter() - started) * 1000, 1),
        }
    except Exception as e:
        logger.error(f"Health check database failure: {e}")
        checks["database"] = {"status": "error"}

    backend = getattr(app.state, "upload_backend", None)
    checks["storage"] = {
        "status": "ok" if backend is not None else "unconfigured",
        "mode": backend.mode if backend is not None else None,
    }

    if checks["database"]["status"] != "ok":
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif backend is None:
        overall = "degraded"
    else:
        overall = "healthy"

    return {"status": overall, "environment": settings.python_env, "checks": checks}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check endpoint."""
    return {"status": "ready"}


# ============================================
# Background Job Debug Endpoints
# ============================================
# Manual control of the sweeps. Not exposed in production.

if not settings.is_production:

    @app.get("/debug/jobs", tags=["Debug"])
    async def list_jobs():
        """List registered background jobs with next run time and pause state."""
        return {"jobs": list_registered_jobs()}

    @app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
    async def trigger_job(job_id: str):
        """Run a background job immediately."""
        try:
            return await trigger_job_manually(job_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

    @app.post("/debug/jobs/{job_id}/pause", tags=["Debug"])
    async def pause_job_endpoint(job_id: str):
        return {"job_id": job_id, "paused": pause_job(job_id)}

    @app.post("/debug/jobs/{job_id}/resume", tags=["Debug"])
    async def resume_job_endpoint(job_id: str):
        return {"job_id": job_id, "resumed": resume_job(job_id)}
"""
School Portal API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- Keyed state store (one-time codes, revoked tokens)
- Background job scheduler (retention sweeps)
- Uploaded file storage
- CORS middleware
- API routing
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from school_portal.api import api_router
from school_portal.core import redis as redis_module
from school_portal.core.config import settings
from school_portal.core.database import async_session_maker, close_db, init_db
from school_portal.core.keystore import InMemoryKeyedStore, KeyedStore, RedisKeyedStore
from school_portal.core.redis import close_redis, init_redis, redis_status
from school_portal.core.scheduler import (
    list_registered_jobs,
    pause_job,
    register_job,
    resume_job,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from school_portal.core.storage import storage
from school_portal.modules.announcements import register_announcement_jobs
from school_portal.modules.applicants import register_applicant_jobs
from school_portal.modules.messages import register_message_jobs

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

JOB_ID_SWEEP_KEYED_STORE = "keyed_store_sweep_expired"


def build_keyed_store() -> KeyedStore:
    """Redis-backed when configured and connected, in-memory otherwise."""
    if settings.keyed_store_backend == "redis":
        if redis_module.redis_client is not None:
            return RedisKeyedStore(redis_module.redis_client)
        if settings.is_production:
            raise RuntimeError("KEYED_STORE_BACKEND=redis but Redis is not connected")
        logger.warning("Redis unavailable, falling back to in-memory keyed store")
    return InMemoryKeyedStore()


def register_jobs(keyed_store: KeyedStore) -> None:
    register_applicant_jobs()
    register_message_jobs()
    register_announcement_jobs()

    async def sweep_keyed_store() -> dict[str, int]:
        return {"removed": await keyed_store.sweep_expired()}

    register_job(
        job_id=JOB_ID_SWEEP_KEYED_STORE,
        func=sweep_keyed_store,
        trigger=IntervalTrigger(minutes=10),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection
    - Database connection
    - Keyed store
    - Background job scheduler
    """
    # Startup
    print(f"Starting School Portal API in {settings.python_env} mode...")

    # Initialize Redis
    try:
        await init_redis()
        print("[OK] Redis connected")
    except Exception as e:
        print(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    # Initialize Database
    try:
        await init_db()
        print("[OK] Database connected")
    except Exception as e:
        print(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    app.state.keyed_store = build_keyed_store()
    print(f"[OK] Keyed store: {type(app.state.keyed_store).__name__}")

    # Initialize Background Job Scheduler
    try:
        register_jobs(app.state.keyed_store)
        await start_scheduler()
        print("[OK] Background scheduler started")
    except Exception as e:
        print(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    # Shutdown
    print("Shutting down School Portal API...")

    # Stop the scheduler first (wait for running jobs)
    await stop_scheduler()
    print("[OK] Background scheduler stopped")

    await close_redis()
    await close_db()
    print("[OK] Cleanup complete")


app = FastAPI(
    title="School Portal API",
    description="Applicant lifecycle and school administration API",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# Uploaded documents
storage.ensure_ready()
app.mount("/files", StaticFiles(directory=storage.base_dir), name="files")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": f"Welcome to the {settings.school_name} API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """
    Readiness check: the database answers.

    Redis is reported but only required when it backs the keyed store.
    """
    redis_state = await redis_status()
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        raise HTTPException(
            status_code=503, detail={"status": "not ready", "database": "down"}
        ) from e

    keyed_store = getattr(app.state, "keyed_store", None)
    if isinstance(keyed_store, RedisKeyedStore) and redis_state != "ok":
        raise HTTPException(
            status_code=503, detail={"status": "not ready", "redis": redis_state}
        )
    return {"status": "ready", "database": "ok", "redis": redis_state}


# ============================================
# Background Job Debug Endpoints
# ============================================
# Manual control of the retention sweeps. In production they run on schedule.


@app.get("/debug/jobs", tags=["Debug"])
async def list_jobs():
    """List registered background jobs with next run time and pause state."""
    return {"jobs": list_registered_jobs()}


@app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
async def trigger_job(job_id: str):
    """
    Run a background job now, bypassing the schedule.

    Args:
        job_id: The ID of the job to trigger. Available jobs:
            - applicants_purge_expired
            - messages_purge_archived
            - announcements_purge_archived
            - keyed_store_sweep_expired

    Raises:
        HTTPException 400: If job_id is not found.
    """
    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.post("/debug/jobs/{job_id}/pause", tags=["Debug"])
async def pause_job_endpoint(job_id: str):
    success = pause_job(job_id)
    return {"job_id": job_id, "paused": success}


@app.post("/debug/jobs/{job_id}/resume", tags=["Debug"])
async def resume_job_endpoint(job_id: str):
    success = resume_job(job_id)
    return {"job_id": job_id, "resumed": success}

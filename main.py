# ============================================================================
# PHYLOGEOGRAPHY PIPELINE - MAIN APPLICATION
# ============================================================================
# STATUS: Core - FastAPI application entry point
# PURPOSE: HTTP surface plus in-process job supervision
# CREATED: 19 OCT 2026
# ============================================================================
"""
Phylogeography Pipeline Main Application

FastAPI application that:
1. Accepts, validates, stops and reports on jobs over HTTP
2. Runs every accepted job in its own asyncio task
3. Owns the shared process registry used by the kill path

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from __version__ import __version__, BUILD_DATE, CODENAME
from api.routes import router, set_services
from core.config import get_defaults
from core.logging import configure_logging, get_logger
from infrastructure import ProcessRegistry
from orchestrator import PipelineOrchestrator
from services import InMemoryAncestorResolver, build_notifier
from services.job_service import JobService

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

# Global instances
_job_service: JobService = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Builds the registry, notifier, resolver, orchestrator and job service
    on startup; cancels running jobs on shutdown.
    """
    global _job_service

    logger.info(f"Starting {CODENAME} v{__version__} (Build {BUILD_DATE})")
    defaults = get_defaults()

    registry = ProcessRegistry()
    notifier = build_notifier(defaults.pipeline.webhook_url)
    logger.info(f"Notifier: {type(notifier).__name__}")

    if defaults.disjoiner.ancestors_file:
        resolver = InMemoryAncestorResolver.from_json(defaults.disjoiner.ancestors_file)
        logger.info(f"Loaded ancestors for {len(resolver)} records")
    else:
        resolver = InMemoryAncestorResolver()

    orchestrator = PipelineOrchestrator(registry, notifier, resolver, defaults=defaults)
    _job_service = JobService(orchestrator, ancestors=resolver)

    set_services(job_service=_job_service)
    logger.info(
        f"Job work dir {defaults.pipeline.work_dir}, logs {defaults.pipeline.logs_dir}, "
        f"max locations {defaults.disjoiner.max_states}"
    )

    yield

    # Shutdown
    logger.info(f"Shutting down {CODENAME}...")
    await _job_service.shutdown()
    logger.info(f"{CODENAME} stopped")


# Create FastAPI app
app = FastAPI(
    title=CODENAME,
    description="Bayesian phylogeography job pipeline",
    version=__version__,
    lifespan=lifespan,
)

# Include API routes
app.include_router(router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": CODENAME,
        "version": __version__,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )

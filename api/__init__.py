# ============================================================================
# API MODULE
# ============================================================================
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for job management
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the phylogeography pipeline.
"""

from .routes import router, set_services
from .schemas import (
    JobCreate,
    JobResponse,
    JobSubmitted,
    RecordSubmission,
    ValidationResponse,
)

__all__ = [
    "router",
    "set_services",
    "JobCreate",
    "JobResponse",
    "JobSubmitted",
    "RecordSubmission",
    "ValidationResponse",
]

# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models and exceptions
# CREATED: 19 OCT 2026
# ============================================================================

from core.contracts import JobStatus, PIPELINE_STAGES
from core.exceptions import PipelineException
from core.models import (
    Job,
    JobParameters,
    ModelParameters,
    JobRecord,
    GeoLocation,
    DisjointResult,
)

__all__ = [
    # Enums
    "JobStatus",
    "PIPELINE_STAGES",
    # Errors
    "PipelineException",
    # Models
    "Job",
    "JobParameters",
    "ModelParameters",
    "JobRecord",
    "GeoLocation",
    "DisjointResult",
]

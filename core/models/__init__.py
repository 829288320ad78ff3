# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# CREATED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the pipeline service.
"""

from core.models.geo import GeoLocation, ExcludedRecord, DisjointResult
from core.models.job import Job, JobParameters, ModelParameters, JobRecord, new_job_id

# DisjointResult references JobRecord, which imports GeoLocation
DisjointResult.model_rebuild(_types_namespace={"JobRecord": JobRecord})

__all__ = [
    # Geo
    "GeoLocation",
    "ExcludedRecord",
    "DisjointResult",
    # Job
    "Job",
    "JobParameters",
    "ModelParameters",
    "JobRecord",
    "new_job_id",
]

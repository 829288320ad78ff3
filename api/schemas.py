# ============================================================================
# API SCHEMAS
# ============================================================================
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the API.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from core.contracts import JobStatus
from core.models import GeoLocation, Job, JobParameters, JobRecord


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class RecordSubmission(BaseModel):
    """One record as submitted, optionally with its ancestor ids."""
    record_id: str = Field(..., min_length=1, max_length=64)
    sequence: str = Field(default="")
    collection_date: Optional[str] = Field(None, max_length=32)
    location: Optional[GeoLocation] = None
    ancestor_ids: Optional[List[int]] = Field(
        None,
        description="Geoname ids of every region enclosing the location"
    )

    def to_record(self) -> JobRecord:
        return JobRecord(
            record_id=self.record_id,
            sequence=self.sequence,
            collection_date=self.collection_date,
            location=self.location,
        )


class JobCreate(BaseModel):
    """Request to start a new job."""
    job_name: Optional[str] = Field(None, max_length=255)
    reply_email: Optional[str] = Field(None, max_length=255)
    records: List[RecordSubmission] = Field(default_factory=list)
    parameters: JobParameters = Field(default_factory=JobParameters)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "job_name": "H5N1 northeast",
                    "reply_email": "someone@example.org",
                    "records": [
                        {
                            "record_id": "KX000001",
                            "sequence": "ACGTACGT",
                            "collection_date": "2015.5",
                            "location": {
                                "geoname_id": 5128581,
                                "name": "New York City",
                                "feature_type": "PPL",
                            },
                            "ancestor_ids": [6295630, 6255149, 6252001, 5128638],
                        }
                    ],
                    "parameters": {"use_glm": False, "disjoiner_level": "Auto"},
                }
            ]
        }
    }

    def to_job(self) -> Tuple[Job, Dict[str, List[int]]]:
        """Build the Job and the submitted ancestor table."""
        job = Job(
            job_name=self.job_name,
            reply_email=self.reply_email,
            parameters=self.parameters,
            records=[record.to_record() for record in self.records],
        )
        ancestors = {
            record.record_id: record.ancestor_ids
            for record in self.records
            if record.ancestor_ids is not None
        }
        return job, ancestors


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class JobSubmitted(BaseModel):
    """Accepted submission."""
    job_id: str
    status: JobStatus = JobStatus.CREATED


class JobResponse(BaseModel):
    """Job status summary."""
    job_id: str
    job_name: Optional[str] = None
    status: JobStatus
    error_message: Optional[str] = None
    distinct_locations: Optional[int] = None
    result_files: List[str] = []
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    model_config = {"from_attributes": True}


class JobListResponse(BaseModel):
    """List of jobs response."""
    jobs: List[JobResponse]
    total: int


class ValidationResponse(BaseModel):
    """Dry-run result."""
    valid: bool
    error: Optional[str] = None
    record_ids: List[str] = []
    distinct_locations: Optional[int] = None


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None
    job_id: Optional[str] = None

# ============================================================================
# JOB MODEL
# ============================================================================
# STATUS: Core model - Job instance (one pipeline run)
# PURPOSE: Track one submitted phylogeography job through its stages
# CREATED: 19 OCT 2026
# EXPORTS: Job, JobParameters, ModelParameters, JobRecord, new_job_id
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Model

A Job represents one submission: the input records, the pipeline
configuration and the lifecycle state.

Jobs live in memory for the lifetime of the service process. State is
mutated only by the orchestrator task that owns the job.
"""

import random
import string
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from core.contracts import (
    ClockModel,
    DisjoinerLevel,
    JobStatus,
    SubstitutionModel,
    TreePrior,
)
from core.models.geo import GeoLocation


def new_job_id() -> str:
    """
    Generate a job id.

    A random lowercase letter followed by a UUID4, so the id is also a valid
    identifier for downstream visualization tools.
    """
    return random.choice(string.ascii_lowercase) + str(uuid.uuid4())


class ModelParameters(BaseModel):
    """Hyperparameters for the inference model."""

    chain_length: int = Field(
        default=10_000_000,
        ge=1_000,
        description="Total MCMC chain length (samples)"
    )
    sub_sample_rate: int = Field(
        default=1_000,
        ge=1,
        description="Log every N samples"
    )
    substitution_model: SubstitutionModel = Field(default=SubstitutionModel.HKY)
    clock_model: ClockModel = Field(default=ClockModel.STRICT)
    tree_prior: TreePrior = Field(default=TreePrior.CONSTANT)
    gamma: bool = Field(default=False, description="Gamma rate heterogeneity")
    invariant_sites: bool = Field(default=False)

    @field_validator("sub_sample_rate")
    @classmethod
    def validate_sub_sample_rate(cls, v: int, info) -> int:
        chain_length = info.data.get("chain_length")
        if chain_length is not None and v >= chain_length:
            raise ValueError("sub_sample_rate must be smaller than chain_length")
        return v


class JobParameters(BaseModel):
    """Pipeline configuration for one job."""

    use_glm: bool = Field(default=False, description="Use GLM predictors")
    predictors: Optional[Dict[str, Dict[str, float]]] = Field(
        default=None,
        description="Custom predictor table: state name -> {predictor -> value}"
    )
    disjoiner_level: DisjoinerLevel = Field(default=DisjoinerLevel.AUTO)
    use_geo_uncertainties: bool = Field(default=False)
    model: ModelParameters = Field(default_factory=ModelParameters)

    @computed_field
    @property
    def use_default_glm(self) -> bool:
        """GLM with the built-in (state-level) predictors."""
        return self.use_glm and not self.predictors


class JobRecord(BaseModel):
    """One input record: an accession plus its sequence and metadata."""

    record_id: str = Field(..., min_length=1, max_length=64)
    sequence: str = Field(default="")
    collection_date: Optional[str] = Field(
        default=None,
        description="Collection date as a decimal year string"
    )
    location: Optional[GeoLocation] = None


class Job(BaseModel):
    """
    A job instance - one execution of the pipeline.

    Lifecycle:
        1. Created with status=CREATED when submitted
        2. Advances through the stages in PIPELINE_STAGES
        3. Ends in SUCCEEDED, FAILED or KILLED
    """

    job_id: str = Field(default_factory=new_job_id, max_length=64)
    job_name: Optional[str] = Field(default=None, max_length=255)
    reply_email: Optional[str] = Field(default=None, max_length=255)

    parameters: JobParameters = Field(default_factory=JobParameters)
    records: List[JobRecord] = Field(default_factory=list)

    # Status
    status: JobStatus = Field(default=JobStatus.CREATED)
    error_message: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="User-safe failure reason"
    )

    # Results
    distinct_locations: Optional[int] = None
    result_files: List[str] = Field(default_factory=list)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @computed_field
    @property
    def is_terminal(self) -> bool:
        """Check if job is in a terminal state."""
        return self.status.is_terminal()

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        """Calculate job duration if started."""
        if not self.started_at:
            return None
        end_time = self.completed_at or datetime.utcnow()
        return (end_time - self.started_at).total_seconds()

    def can_transition_to(self, new_status: JobStatus) -> bool:
        """
        Validate if a status transition is allowed.

        Valid transitions:
            each stage -> the next stage in PIPELINE_STAGES
            any non-terminal -> FAILED, KILLED
            SUCCEEDED, FAILED, KILLED -> (none, terminal)
        """
        if self.status == new_status:
            return True  # No-op is always allowed
        if self.status.is_terminal():
            return False
        if new_status in (JobStatus.FAILED, JobStatus.KILLED):
            return True
        return new_status == self.status.next_stage()

    def advance(self, new_status: JobStatus) -> None:
        """Move to the next pipeline stage."""
        if not self.can_transition_to(new_status):
            raise ValueError(f"Cannot transition from {self.status} to {new_status}")
        if self.status == JobStatus.CREATED:
            self.started_at = datetime.utcnow()
        self.status = new_status
        self.updated_at = datetime.utcnow()
        if new_status == JobStatus.SUCCEEDED:
            self.completed_at = self.updated_at

    def mark_failed(self, error_message: str) -> None:
        """Mark job as failed."""
        if not self.can_transition_to(JobStatus.FAILED):
            raise ValueError(f"Cannot transition from {self.status} to FAILED")
        self.status = JobStatus.FAILED
        self.error_message = error_message[:2000]  # Truncate if needed
        self.completed_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def mark_killed(self, error_message: str) -> None:
        """Mark job as killed."""
        if not self.can_transition_to(JobStatus.KILLED):
            raise ValueError(f"Cannot transition from {self.status} to KILLED")
        self.status = JobStatus.KILLED
        self.error_message = error_message[:2000]
        self.completed_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Job", "JobParameters", "ModelParameters", "JobRecord", "new_job_id"]

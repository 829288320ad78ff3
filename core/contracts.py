# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core enums shared by models, pipeline and API
# PURPOSE: Define job lifecycle states and model-option enums
# CREATED: 19 OCT 2026
# EXPORTS: JobStatus, PIPELINE_STAGES, SubstitutionModel, ClockModel,
#          TreePrior, DisjoinerLevel
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the phylogeography pipeline.

These enums cross every boundary:
- HTTP (request/response schemas)
- Python (orchestrator state machine, model builder)
- Notifications (status strings)
"""

from enum import Enum
from typing import Tuple


# ============================================================================
# STATUS ENUMS
# ============================================================================

class JobStatus(str, Enum):
    """
    Job lifecycle states.

    State transitions:
        CREATED -> ALIGNING -> RESOLVING -> BUILDING_MODEL -> INFERRING
                -> ANNOTATING -> VISUALIZING -> SUCCEEDED
        any non-terminal -> FAILED
        any non-terminal -> KILLED
    """
    CREATED = "created"                # Accepted, task not yet running
    ALIGNING = "aligning"              # Aligner running
    RESOLVING = "resolving"            # Disjoint location resolution
    BUILDING_MODEL = "building_model"  # Model file generation
    INFERRING = "inferring"            # Inference engine running
    ANNOTATING = "annotating"          # Tree summarizer running
    VISUALIZING = "visualizing"        # Visualization generator running
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    KILLED = "killed"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.KILLED)

    def next_stage(self) -> "JobStatus":
        """The stage that follows this one in the happy path."""
        index = PIPELINE_STAGES.index(self)
        return PIPELINE_STAGES[index + 1]


# Happy-path order, CREATED through SUCCEEDED
PIPELINE_STAGES: Tuple[JobStatus, ...] = (
    JobStatus.CREATED,
    JobStatus.ALIGNING,
    JobStatus.RESOLVING,
    JobStatus.BUILDING_MODEL,
    JobStatus.INFERRING,
    JobStatus.ANNOTATING,
    JobStatus.VISUALIZING,
    JobStatus.SUCCEEDED,
)


# ============================================================================
# MODEL OPTION ENUMS
# ============================================================================

class SubstitutionModel(str, Enum):
    """Allowed nucleotide substitution models."""
    HKY = "HKY"
    GTR = "GTR"
    TN93 = "TN93"


class ClockModel(str, Enum):
    """Allowed molecular clock models."""
    STRICT = "Strict"
    RELAXED = "Relaxed"


class TreePrior(str, Enum):
    """Allowed coalescent tree priors."""
    CONSTANT = "Constant"
    EXPONENTIAL = "Exponential"
    LOGISTIC = "Logistic"
    EXPANSION = "Expansion"
    BAYESIAN_SKYLINE = "BayesianSkyline"
    GMRF_SKYRIDE = "GMRFSkyride"


class DisjoinerLevel(str, Enum):
    """
    Granularity override for disjoint location resolution.

    AUTO picks the most frequent feature type among the job's records.
    """
    AUTO = "Auto"
    PCLI = "PCLI"
    ADM1 = "ADM1"
    ADM2 = "ADM2"

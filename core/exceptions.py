# ============================================================================
# PIPELINE EXCEPTIONS
# ============================================================================
# STATUS: Foundation - Error taxonomy
# PURPOSE: Separate internal diagnostics from user-facing messages
# CREATED: 19 OCT 2026
# ============================================================================
"""
Pipeline Exceptions

Every pipeline error carries two messages:
- message: internal diagnostic, goes to logs only
- user_message: safe to show to the submitter (notifications, HTTP errors)

Anything that is not a PipelineException is an infrastructure error and is
reported to the submitter as INTERNAL_ERROR_MESSAGE.
"""

from typing import Optional


INTERNAL_ERROR_MESSAGE = "Internal Server Error"


class PipelineException(Exception):
    """Base class for expected pipeline failures."""

    default_user_message = "Pipeline Failed"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message


class ValidationError(PipelineException):
    """Submitted job configuration is invalid. Raised before a job exists."""
    default_user_message = "Invalid Job Parameters"


class ResolutionError(PipelineException):
    """Locations could not be reduced to a usable disjoint partition."""
    default_user_message = "Error Disjointing Locations"


class DisjointerError(ResolutionError):
    """Too few / too many distinct locations, or ancestor lookup failed."""


class CanonicalizationError(ResolutionError):
    """A location could not be matched to a canonical US state."""

    def __init__(self, location_name: str):
        super().__init__(
            f"Could not match Location to US State: {location_name}",
            f"Could not match Location to US State: {location_name}",
        )
        self.location_name = location_name


class ExternalToolError(PipelineException):
    """An external tool exited non-zero or did not produce its artifact."""

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        tool: Optional[str] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message, user_message)
        self.tool = tool
        self.exit_code = exit_code


class ModelBuildError(PipelineException):
    """The model description file could not be generated or edited."""
    default_user_message = "Error Building Model File"


class DegenerateModelError(PipelineException):
    """Inference was killed because the rate matrix never moved."""
    default_user_message = "Rate Matrix Error. Try reducing discrete states."


class JobKilledError(PipelineException):
    """The job's process was removed from the registry by someone else."""
    default_user_message = "Job was stopped!"


class JobNotFoundError(PipelineException):
    """No registered process (or no known job) for the given id."""

    def __init__(self, job_id: str):
        super().__init__(
            f"Tried to access non-existent job: {job_id}",
            "Job Does Not Exist!",
        )
        self.job_id = job_id


class InfrastructureError(Exception):
    """Wraps unanticipated failures; always mapped to INTERNAL_ERROR_MESSAGE."""


def user_message_for(error: BaseException) -> str:
    """User-safe message for any exception raised inside a job task."""
    if isinstance(error, PipelineException):
        return error.user_message
    return INTERNAL_ERROR_MESSAGE


__all__ = [
    "INTERNAL_ERROR_MESSAGE",
    "PipelineException",
    "ValidationError",
    "ResolutionError",
    "DisjointerError",
    "CanonicalizationError",
    "ExternalToolError",
    "ModelBuildError",
    "DegenerateModelError",
    "JobKilledError",
    "JobNotFoundError",
    "InfrastructureError",
    "user_message_for",
]

# ============================================================================
# JOB SERVICE
# ============================================================================
# STATUS: Core - Job lifecycle entry points
# PURPOSE: Submit, stop, validate and look up jobs
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Service

Entry points used by the HTTP layer:
- submit: preflight, then start the job in its own asyncio task and
  return the job id immediately
- stop: kill the job's running tool through the registry
- validate: dry run (alignment + resolution) returning the retained
  records and distinct-location count
- get: in-memory status lookup (this process lifetime only)

Ancestor ids submitted with a request are scoped to that request: they are
overlaid on the shared resolver for one job and never written into it.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from core.exceptions import JobNotFoundError, PipelineException, user_message_for
from core.logging import get_logger
from core.models import Job
from orchestrator.pipeline import PipelineOrchestrator
from services.ancestors import AncestorResolver, JobAncestorResolver
from services.preflight import JobPreflightValidator

logger = get_logger(__name__)


@dataclass
class ValidationOutcome:
    """Result of a dry run."""
    valid: bool
    error: Optional[str] = None
    record_ids: List[str] = field(default_factory=list)
    distinct_locations: Optional[int] = None


class JobService:
    """Service for job lifecycle management."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        preflight: Optional[JobPreflightValidator] = None,
        ancestors: Optional[AncestorResolver] = None,
    ):
        """
        Initialize job service.

        Args:
            orchestrator: Runs job tasks
            preflight: Submission validator
            ancestors: Shared read-only resolver that submitted ancestor
                ids are overlaid on (orchestrator's resolver if None)
        """
        self.orchestrator = orchestrator
        self.preflight = preflight or JobPreflightValidator(orchestrator.defaults.pipeline)
        self.ancestors = ancestors if ancestors is not None else orchestrator.disjointer.resolver
        self._jobs: Dict[str, Job] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    async def submit(
        self,
        job: Job,
        ancestors: Optional[Mapping[str, Iterable[int]]] = None,
    ) -> str:
        """
        Validate and start a job. Returns the job id without waiting.

        Raises:
            ValidationError: Preflight rejected the submission
        """
        self.preflight.check(job)
        resolver = self._resolver_for(ancestors)

        self._jobs[job.job_id] = job
        task = asyncio.create_task(self._run(job, resolver), name=f"job:{job.job_id}")
        self._tasks[job.job_id] = task
        logger.info(f"Submitted job {job.job_id} with {len(job.records)} records")
        return job.job_id

    async def _run(self, job: Job, resolver: AncestorResolver) -> None:
        try:
            await self.orchestrator.run(job, resolver=resolver)
        finally:
            self._tasks.pop(job.job_id, None)

    def stop(self, job_id: str) -> None:
        """
        Kill a running job.

        Raises:
            JobNotFoundError: No running tool is registered for job_id
        """
        self.orchestrator.kill(job_id)

    async def validate(
        self,
        job: Job,
        ancestors: Optional[Mapping[str, Iterable[int]]] = None,
    ) -> ValidationOutcome:
        """Dry-run a submission. Failures are reported, not raised."""
        try:
            self.preflight.check(job)
            result = await self.orchestrator.validate(
                job, resolver=self._resolver_for(ancestors),
            )
        except PipelineException as e:
            return ValidationOutcome(valid=False, error=e.user_message)
        except Exception as e:
            logger.exception(f"Validation of {job.job_id} failed unexpectedly: {e}")
            return ValidationOutcome(valid=False, error=user_message_for(e))

        return ValidationOutcome(
            valid=True,
            record_ids=result.record_ids,
            distinct_locations=result.distinct_locations,
        )

    def get(self, job_id: str) -> Job:
        """
        Get a submitted job.

        Raises:
            JobNotFoundError: Unknown job id
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_active(self) -> List[Job]:
        return [job for job in self._jobs.values() if not job.is_terminal]

    async def shutdown(self) -> None:
        """Cancel running job tasks and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running jobs")

    def _resolver_for(
        self,
        ancestors: Optional[Mapping[str, Iterable[int]]],
    ) -> AncestorResolver:
        if ancestors:
            logger.debug(f"Using submitted ancestors for {len(ancestors)} records")
        return JobAncestorResolver(self.ancestors, ancestors)


__all__ = ["JobService", "ValidationOutcome"]

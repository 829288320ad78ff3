# ============================================================================
# PROCESS REGISTRY
# ============================================================================
# STATUS: Infrastructure - Concurrency control
# PURPOSE: Thread-safe job id -> running external process table
# CREATED: 19 OCT 2026
# ============================================================================
"""
Process Registry

Maps each job id to the external process its current stage is running.
The entry, not the OS process, is the unit of truth for "is this job
killable":

- The orchestrator registers a process when a stage spawns it and
  deregisters it when the stage's wait returns.
- kill() removes the entry first, then terminates the process. The owning
  task notices the missing entry on deregister and ends the job as KILLED.

One instance is constructed at startup and injected into the orchestrator
and the stop endpoint. All methods are safe to call from the event loop
and from other threads.

Usage:
    registry = ProcessRegistry()
    registry.register(job_id, process)
    ...
    if not registry.deregister(job_id):
        raise JobKilledError(...)
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from core.exceptions import JobNotFoundError

logger = logging.getLogger(__name__)


class ProcessHandle(Protocol):
    """Anything that can be terminated (asyncio.subprocess.Process in production)."""

    def terminate(self) -> None:
        ...


class ProcessRegistry:
    """
    Lock-guarded dict of job id -> ProcessHandle.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._processes: Dict[str, ProcessHandle] = {}

    def register(self, job_id: str, handle: ProcessHandle) -> None:
        """Register the running process for a job, replacing any previous one."""
        with self._lock:
            previous = self._processes.get(job_id)
            self._processes[job_id] = handle
        if previous is not None and previous is not handle:
            logger.warning(f"Replaced stale process entry for job {job_id}")

    def deregister(self, job_id: str) -> bool:
        """Remove a job's entry. True iff an entry existed."""
        with self._lock:
            return self._processes.pop(job_id, None) is not None

    def exists(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._processes

    def get(self, job_id: str) -> Optional[ProcessHandle]:
        with self._lock:
            return self._processes.get(job_id)

    def kill(self, job_id: str, reason: Optional[str] = None) -> None:
        """
        Remove the job's entry and terminate its process.

        Args:
            job_id: Job to kill
            reason: Optional reason, logged

        Raises:
            JobNotFoundError: No process is registered for job_id
        """
        with self._lock:
            handle = self._processes.pop(job_id, None)
        if handle is None:
            raise JobNotFoundError(job_id)

        logger.info(f"Killing process for job {job_id}" + (f": {reason}" if reason else ""))
        try:
            handle.terminate()
        except ProcessLookupError:
            # Exited between lookup and terminate
            logger.debug(f"Process for job {job_id} already exited")

    def job_ids(self) -> List[str]:
        with self._lock:
            return list(self._processes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def __contains__(self, job_id: Any) -> bool:
        return self.exists(job_id)


__all__ = ["ProcessRegistry", "ProcessHandle"]

# ============================================================================
# STAGE RUNNER
# ============================================================================
# STATUS: Orchestrator - External tool execution
# PURPOSE: Spawn, register, wait for and deregister one tool process
# CREATED: 19 OCT 2026
# ============================================================================
"""
Stage Runner

Every external stage follows the same contract:

    1. spawn the tool with stdout/stderr appended to the job log
    2. register the process in the ProcessRegistry (now killable)
    3. wait for it to exit
    4. deregister; if the entry was already gone, someone killed the job

Spawning goes through an injectable coroutine (asyncio's
create_subprocess_exec by default) so tests can substitute fake processes.

JobPaths centralizes every per-job file name.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Union

from core.exceptions import ExternalToolError, JobKilledError
from core.logging import get_logger, log_context
from infrastructure.process_registry import ProcessRegistry

logger = get_logger(__name__)

# (*argv, **kwargs) -> process with wait(), communicate(), terminate(), returncode
SpawnFn = Callable[..., Awaitable[Any]]

# User-facing message per tool when it exits non-zero
TOOL_USER_MESSAGES: Dict[str, str] = {
    "aligner": "Sequence Alignment Failed",
    "beastgen": "BeastGen Failed",
    "glm": "BEAST_GLM failed!",
    "beast": "BEAST Failed",
    "treeannotator": "Tree Annotator Failed",
    "spread3": "SpreaD3 Failed",
    "loganalyser": "GLM Figure Generator Failed",
    "glm_table": "GLM Figure Generator Failed",
    "glm_figure": "GLM Figure Generator Failed",
}


@dataclass(frozen=True)
class JobPaths:
    """Every file a job reads or writes."""

    job_id: str
    work_root: Path
    logs_dir: Path
    glm: bool = False

    @classmethod
    def for_job(
        cls,
        job_id: str,
        work_dir: Union[str, Path],
        logs_dir: Union[str, Path],
        glm: bool = False,
    ) -> "JobPaths":
        return cls(job_id, Path(work_dir), Path(logs_dir), glm)

    @property
    def work_dir(self) -> Path:
        return self.work_root / self.job_id

    @property
    def log(self) -> Path:
        return self.logs_dir / f"{self.job_id}.log"

    def _file(self, suffix: str) -> Path:
        return self.work_dir / f"{self.job_id}{suffix}"

    @property
    def raw_fasta(self) -> Path:
        return self._file(".fasta")

    @property
    def aligned_fasta(self) -> Path:
        return self._file("-aligned.fasta")

    @property
    def traits(self) -> Path:
        return self._file("-traits.txt")

    @property
    def coordinates(self) -> Path:
        return self._file("-coords.txt")

    @property
    def predictors(self) -> Path:
        return self._file("-predictors.txt")

    @property
    def model_xml(self) -> Path:
        return self._file(".xml")

    @property
    def glm_xml(self) -> Path:
        return self._file("_GLMedits.xml")

    @property
    def inference_input(self) -> Path:
        return self.glm_xml if self.glm else self.model_xml

    @property
    def trees(self) -> Path:
        if self.glm:
            return self._file("-aligned_GLMedits_states.trees")
        return self._file("-aligned.trees")

    @property
    def rate_log(self) -> Path:
        if self.glm:
            return self._file("_GLMedits_states.model.log")
        return self._file("-aligned.states.rates.log")

    @property
    def tree(self) -> Path:
        return self._file(".tree")

    @property
    def visualization(self) -> Path:
        return self._file("-spread3.json")

    @property
    def glm_summary(self) -> Path:
        return self._file("_GLMedits_states_logAnalyser_output.txt")

    @property
    def glm_table(self) -> Path:
        return self._file("_GLMedits_states_summary_clean.txt")

    @property
    def predictor_names(self) -> Path:
        return self._file("_predictorNames.txt")

    @property
    def glm_figure(self) -> Path:
        return self._file("_GLMedits_states_figure.pdf")

    def prepare(self) -> None:
        """Create the working and log directories."""
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


class StageRunner:
    """
    Runs external tools under the registry contract.

    Args:
        registry: Shared process registry
        spawn: Process factory, defaults to asyncio.create_subprocess_exec
    """

    def __init__(
        self,
        registry: ProcessRegistry,
        spawn: Optional[SpawnFn] = None,
    ):
        self.registry = registry
        self._spawn = spawn or asyncio.create_subprocess_exec

    async def run_tool(
        self,
        job_id: str,
        tool: str,
        argv: Sequence[str],
        log_path: Union[str, Path],
        cwd: Optional[Union[str, Path]] = None,
        stdout_path: Optional[Union[str, Path]] = None,
        stdin_data: Optional[bytes] = None,
    ) -> int:
        """
        Run one tool to completion. Returns its exit code.

        Args:
            job_id: Owning job (registry key)
            tool: Short tool name for logs and errors
            argv: Full command line
            log_path: Job log; stderr (and stdout unless redirected) appended
            cwd: Working directory for the tool
            stdout_path: Capture stdout to this file instead of the log
            stdin_data: Bytes written to the tool's stdin

        Raises:
            ExternalToolError: The tool could not be started
            JobKilledError: The registry entry was removed while it ran
        """
        with log_context(job_id=job_id, tool=tool):
            logger.info(f"Starting process: {' '.join(str(arg) for arg in argv)}")

            with open(log_path, "ab") as log_handle:
                stdout_handle = open(stdout_path, "wb") if stdout_path else None
                try:
                    try:
                        process = await self._spawn(
                            *[str(arg) for arg in argv],
                            stdin=asyncio.subprocess.PIPE if stdin_data else asyncio.subprocess.DEVNULL,
                            stdout=stdout_handle or log_handle,
                            stderr=log_handle,
                            cwd=str(cwd) if cwd else None,
                        )
                    except OSError as e:
                        raise ExternalToolError(
                            f"Could not start {tool}: {e}",
                            TOOL_USER_MESSAGES.get(tool),
                            tool=tool,
                        ) from e

                    self.registry.register(job_id, process)
                    try:
                        if stdin_data:
                            await process.communicate(stdin_data)
                        else:
                            await process.wait()
                    except asyncio.CancelledError:
                        # Task cancelled (shutdown): don't leave the tool running
                        if self.registry.deregister(job_id):
                            process.terminate()
                        raise
                finally:
                    if stdout_handle is not None:
                        stdout_handle.close()

            if not self.registry.deregister(job_id):
                logger.warning(f"{tool} process was removed from the registry; job was killed")
                raise JobKilledError(f"Job {job_id} was killed during {tool}")

            exit_code = process.returncode
            log_fn = logger.info if exit_code == 0 else logger.error
            log_fn(f"{tool} exited with code {exit_code}")
            return exit_code

    async def run_checked(
        self,
        job_id: str,
        tool: str,
        argv: Sequence[str],
        log_path: Union[str, Path],
        **kwargs,
    ) -> None:
        """run_tool, raising ExternalToolError on a non-zero exit."""
        exit_code = await self.run_tool(job_id, tool, argv, log_path, **kwargs)
        if exit_code != 0:
            raise ExternalToolError(
                f"{tool} failed! with code: {exit_code}",
                TOOL_USER_MESSAGES.get(tool),
                tool=tool,
                exit_code=exit_code,
            )


__all__ = ["JobPaths", "StageRunner", "SpawnFn", "TOOL_USER_MESSAGES"]

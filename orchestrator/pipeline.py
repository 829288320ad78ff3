# ============================================================================
# PIPELINE ORCHESTRATOR
# ============================================================================
# STATUS: Orchestrator - Per-job stage state machine
# PURPOSE: Drive one job from alignment through visualization
# CREATED: 19 OCT 2026
# EXPORTS: PipelineOrchestrator
# ============================================================================
"""
Pipeline Orchestrator

Runs one job per asyncio task through the fixed stage sequence:

    CREATED -> ALIGNING -> RESOLVING -> BUILDING_MODEL -> INFERRING
            -> ANNOTATING -> VISUALIZING -> SUCCEEDED

Every external tool goes through the StageRunner (spawn, register, wait,
deregister). The disjoint location resolution runs in-process between the
alignment and the model build.

GLM jobs also plot the predictor-support figure during VISUALIZING; like
the SpreaD3 output it is optional and its failure only loses the file.

Failure containment is a single boundary in run(): PipelineException
subclasses end the job with their user message, anything else with
"Internal Server Error". Whatever happens, the job's registry entry is
removed and exactly one terminal notification is sent.

Usage:
    orchestrator = PipelineOrchestrator(registry, notifier, resolver)
    job = await orchestrator.run(job)
"""

import asyncio
import time
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Iterator, List, Optional, Set

from core.config import Defaults, get_defaults
from core.contracts import JobStatus
from core.exceptions import (
    DegenerateModelError,
    ExternalToolError,
    JobKilledError,
    ModelBuildError,
    PipelineException,
    user_message_for,
)
from core.logging import get_logger, job_log_handler, log_checkpoint, log_context
from core.models import DisjointResult, Job, ModelParameters
from geo.disjointer import GeonameDisjointer
from infrastructure.process_registry import ProcessRegistry
from orchestrator.retry import Attempt, AttemptOutcome, InferenceRetryPolicy, RetryAction
from orchestrator.stages import JobPaths, SpawnFn, StageRunner, TOOL_USER_MESSAGES
from orchestrator.watchers import DegenerateModelWatcher, InferenceHealthWatcher
from services.ancestors import AncestorResolver
from services.formats import (
    filter_fasta,
    state_label,
    taxon_label,
    write_coordinates,
    write_fasta,
    write_predictors,
    write_traits,
    youngest_date,
)
from services.model_builder import ModelBuilder, TRAIT_NAME
from services.notifier import Notifier

logger = get_logger(__name__)

# Answers to the GLM script's interactive prompts
GLM_PROMPT_ANSWERS = b"y\nn\nn\ny\n"

# Taxon labels are "<record>_<date>": date is the second field
DATE_FIELD_ORDER = "2"


def _has_content(path: Path) -> bool:
    return path.exists() and path.stat().st_size > 0


class PipelineOrchestrator:
    """
    Stage state machine for phylogeography jobs.

    Stateless between jobs apart from the shared registry; one instance
    serves every job task.
    """

    def __init__(
        self,
        registry: ProcessRegistry,
        notifier: Notifier,
        resolver: AncestorResolver,
        defaults: Optional[Defaults] = None,
        spawn: Optional[SpawnFn] = None,
        model_builder: Optional[ModelBuilder] = None,
        retry_policy: Optional[InferenceRetryPolicy] = None,
    ):
        """
        Args:
            registry: Shared process registry (also used by kill)
            notifier: Submitter notifications
            resolver: Ancestor lookup for disjoint resolution
            defaults: Tool and layout configuration (env defaults if None)
            spawn: Process factory override (tests)
            model_builder: Discrete-trait model builder
            retry_policy: Inference retry state machine
        """
        self.defaults = defaults or get_defaults()
        self.registry = registry
        self.notifier = notifier
        self.runner = StageRunner(registry, spawn)
        self.disjointer = GeonameDisjointer(
            resolver,
            max_states=self.defaults.disjoiner.max_states,
            min_states=self.defaults.disjoiner.min_states,
        )
        self.model_builder = model_builder or ModelBuilder()
        self.retry_policy = retry_policy or InferenceRetryPolicy()

    @property
    def tools(self):
        return self.defaults.tools

    def paths_for(self, job: Job) -> JobPaths:
        return JobPaths.for_job(
            job.job_id,
            self.defaults.pipeline.work_dir,
            self.defaults.pipeline.logs_dir,
            glm=job.parameters.use_glm,
        )

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def run(self, job: Job, resolver: Optional[AncestorResolver] = None) -> Job:
        """
        Run a job to a terminal state. Never raises PipelineException.

        resolver overrides the shared ancestor lookup for this job only.

        Task cancellation (service shutdown) marks the job KILLED and
        propagates.
        """
        paths = self.paths_for(job)
        paths.prepare()

        with log_context(job_id=job.job_id), job_log_handler(paths.log):
            log_checkpoint("job_started", {"records": len(job.records)})
            await self.notifier.job_started(job)

            try:
                result_files = await self._execute(job, paths, resolver)

            except asyncio.CancelledError:
                logger.warning(f"Job task cancelled during {job.status.value}")
                job.mark_killed(JobKilledError.default_user_message)
                raise

            except JobKilledError as e:
                logger.warning(f"Job stopped during {job.status.value}: {e.message}")
                job.mark_killed(e.user_message)
                await self.notifier.job_failed(job, e.user_message)

            except PipelineException as e:
                logger.error(f"Job failed during {job.status.value}: {e.message}")
                job.mark_failed(e.user_message)
                await self.notifier.job_failed(job, e.user_message)

            except Exception as e:
                logger.exception(f"Unexpected error during {job.status.value}: {e}")
                job.mark_failed(user_message_for(e))
                await self.notifier.job_failed(job, job.error_message)

            else:
                job.result_files = result_files
                job.advance(JobStatus.SUCCEEDED)
                await self.notifier.job_succeeded(job, result_files)

            finally:
                self.registry.deregister(job.job_id)
                log_checkpoint("job_terminal", {
                    "status": job.status.value,
                    "error": job.error_message,
                    "duration_seconds": job.duration_seconds,
                })

        return job

    async def validate(
        self,
        job: Job,
        resolver: Optional[AncestorResolver] = None,
    ) -> DisjointResult:
        """
        Dry run: alignment and location resolution only.

        The job's status is not touched. Raises the failing stage's
        PipelineException. No registry entry survives the call.
        """
        paths = self.paths_for(job)
        paths.prepare()

        with log_context(job_id=job.job_id, operation="validate"), job_log_handler(paths.log):
            try:
                with log_context(stage=JobStatus.ALIGNING.value):
                    await self._align(job, paths)
                with log_context(stage=JobStatus.RESOLVING.value):
                    result = self._resolve(job, resolver)
                with log_context(stage=JobStatus.BUILDING_MODEL.value):
                    # Dry run stops before any model file is generated
                    logger.info(
                        f"Skipping model build: {result.distinct_locations} states, "
                        f"{len(result.records)} taxa"
                    )
            finally:
                self.registry.deregister(job.job_id)

        log_checkpoint("job_validated", {
            "job_id": job.job_id,
            "distinct_locations": result.distinct_locations,
            "records": len(result.records),
        })
        return result

    def kill(self, job_id: str) -> None:
        """
        Stop a job's running tool.

        Raises:
            JobNotFoundError: No process is registered for job_id
        """
        self.registry.kill(job_id, reason=JobKilledError.default_user_message)
        logger.info(f"Kill requested for job {job_id}")

    # =========================================================================
    # STAGE SEQUENCE
    # =========================================================================

    @contextmanager
    def _stage(self, job: Job, status: JobStatus) -> Iterator[None]:
        job.advance(status)
        with log_context(stage=status.value):
            log_checkpoint("stage_started")
            started = time.monotonic()
            yield
            log_checkpoint("stage_completed", {
                "seconds": round(time.monotonic() - started, 1),
            })

    async def _execute(
        self,
        job: Job,
        paths: JobPaths,
        resolver: Optional[AncestorResolver],
    ) -> List[str]:
        with self._stage(job, JobStatus.ALIGNING):
            await self._align(job, paths)

        with self._stage(job, JobStatus.RESOLVING):
            result = self._resolve(job, resolver)

        with self._stage(job, JobStatus.BUILDING_MODEL):
            await self._build_model(job, paths, result)

        with self._stage(job, JobStatus.INFERRING):
            await self._infer(job, paths)

        with self._stage(job, JobStatus.ANNOTATING):
            await self._annotate(job, paths)
        result_files = [str(paths.tree)]

        with self._stage(job, JobStatus.VISUALIZING):
            if await self._visualize(job, paths, result):
                result_files.append(str(paths.visualization))
            if job.parameters.use_glm and await self._glm_figure(job, paths):
                result_files.append(str(paths.glm_figure))

        return result_files

    # =========================================================================
    # STAGES
    # =========================================================================

    async def _align(self, job: Job, paths: JobPaths) -> None:
        count = write_fasta(paths.raw_fasta, job.records)
        logger.info(f"Wrote {count} sequences to {paths.raw_fasta.name}")

        argv = [*self.tools.aligner_cmd, paths.raw_fasta]
        await self.runner.run_checked(
            job.job_id, "aligner", argv, paths.log,
            stdout_path=paths.aligned_fasta,
        )
        if not _has_content(paths.aligned_fasta):
            raise ExternalToolError(
                f"Aligner produced no output in {paths.aligned_fasta.name}",
                TOOL_USER_MESSAGES["aligner"],
                tool="aligner",
            )

    def _resolve(self, job: Job, resolver: Optional[AncestorResolver] = None) -> DisjointResult:
        params = job.parameters
        result = self.disjointer.disjoin(
            job.records,
            use_default_glm=params.use_default_glm,
            disjoiner_level=params.disjoiner_level,
            resolver=resolver,
        )
        for excluded in result.excluded:
            logger.info(f"Excluded record {excluded.record_id}: {excluded.reason}")
        job.distinct_locations = result.distinct_locations
        return result

    async def _build_model(self, job: Job, paths: JobPaths, result: DisjointResult) -> None:
        retained: Set[str] = {taxon_label(record) for record in result.records}
        kept = filter_fasta(paths.aligned_fasta, retained)
        if kept != len(retained):
            raise ModelBuildError(
                f"Aligned file holds {kept} of {len(retained)} retained taxa"
            )

        taxon_states = write_traits(paths.traits, result.records)
        write_coordinates(paths.coordinates, result.partition)

        model = job.parameters.model
        template = self.template_name(model)
        logger.info(f"Running model generator with template {template}")
        argv = [
            *self.tools.beastgen_cmd,
            "-date_order", DATE_FIELD_ORDER,
            "-D", f"chain_length={model.chain_length},log_every={model.sub_sample_rate}",
            template,
            paths.aligned_fasta.resolve(),
            paths.model_xml.resolve(),
        ]
        await self.runner.run_checked(
            job.job_id, "beastgen", argv, paths.log, cwd=self.tools.beastgen_dir,
        )
        if not _has_content(paths.model_xml):
            raise ExternalToolError(
                f"Model generator did not write {paths.model_xml.name}",
                TOOL_USER_MESSAGES["beastgen"],
                tool="beastgen",
            )

        # The GLM script derives its own output names from the plain ones
        plain = replace(paths, glm=False)
        self.model_builder.insert_discrete_trait(
            paths.model_xml,
            taxon_states,
            [state_label(location.name) for location in result.partition],
            rates_log_name=plain.rate_log.name,
            trees_file_name=plain.trees.name,
            log_every=model.sub_sample_rate,
        )

        if job.parameters.use_glm:
            await self._add_glm_predictors(job, paths, result)

    async def _add_glm_predictors(self, job: Job, paths: JobPaths, result: DisjointResult) -> None:
        names = write_predictors(
            paths.predictors, result.partition, job.parameters.predictors or {},
        )
        logger.info(f"Adding GLM predictors: {', '.join(['lat', 'long'] + names)}")

        argv = [
            "python3", self.tools.glm_script,
            paths.model_xml.name, TRAIT_NAME, "batch", paths.predictors.resolve(),
        ]
        await self.runner.run_checked(
            job.job_id, "glm", argv, paths.log,
            cwd=paths.work_dir,
            stdin_data=GLM_PROMPT_ANSWERS,
        )
        if not _has_content(paths.glm_xml):
            raise ExternalToolError(
                f"GLM script did not write {paths.glm_xml.name}",
                TOOL_USER_MESSAGES["glm"],
                tool="glm",
            )

    async def _infer(self, job: Job, paths: JobPaths) -> None:
        model = job.parameters.model
        config = self.defaults.pipeline

        health = InferenceHealthWatcher(
            paths.log,
            model.chain_length,
            on_progress=lambda hours, final: self.notifier.job_progress(job, hours, final),
            config=config,
        )
        rates = DegenerateModelWatcher(
            paths.rate_log, job.job_id, model.chain_length, self.registry, config=config,
        )

        health.start()
        rates.start()
        try:
            attempt = self.retry_policy.first_attempt
            while True:
                argv = list(self.tools.beast_cmd)
                if attempt == Attempt.FALLBACK:
                    argv.extend(self.tools.fallback_args)
                argv.append(paths.inference_input.name)

                health.begin_attempt()
                try:
                    exit_code = await self.runner.run_tool(
                        job.job_id, "beast", argv, paths.log, cwd=paths.work_dir,
                    )
                except JobKilledError:
                    if rates.triggered:
                        raise DegenerateModelError(
                            f"Rate matrix unchanged after {rates.checkpoint} samples"
                        )
                    raise

                # Pick up any lines written just before exit
                await health.drain()

                outcome = AttemptOutcome(
                    attempt=attempt,
                    exit_code=exit_code,
                    artifact_present=_has_content(paths.trees),
                    fatal_signature=health.fatal_seen,
                )
                decision = self.retry_policy.decide(outcome)
                log_checkpoint("inference_attempt", {
                    "attempt": attempt.value,
                    "exit_code": exit_code,
                    "action": decision.action.value,
                })

                if decision.action == RetryAction.SUCCEED:
                    return
                if decision.action == RetryAction.FAIL:
                    raise ExternalToolError(
                        decision.reason,
                        TOOL_USER_MESSAGES["beast"],
                        tool="beast",
                        exit_code=exit_code,
                    )
                logger.warning(decision.reason)
                attempt = decision.next_attempt
        finally:
            await health.stop()
            await rates.stop()

    async def _annotate(self, job: Job, paths: JobPaths) -> None:
        argv = [
            *self.tools.treeannotator_cmd,
            "-burnin", str(self.tools.burnin),
            paths.trees.resolve(),
            paths.tree.resolve(),
        ]
        await self.runner.run_checked(job.job_id, "treeannotator", argv, paths.log)
        if not _has_content(paths.tree):
            raise ExternalToolError(
                f"Tree summarizer did not write {paths.tree.name}",
                TOOL_USER_MESSAGES["treeannotator"],
                tool="treeannotator",
            )

    async def _visualize(self, job: Job, paths: JobPaths, result: DisjointResult) -> bool:
        """Run SpreaD3. Failures are logged; the tree is delivered regardless."""
        try:
            mrsd = youngest_date(result.records)
        except ValueError as e:
            logger.error(f"Skipping visualization: {e}")
            return False

        jar = Path(self.tools.spread3_jar).resolve()
        argv = [
            "java", "-jar", jar,
            "-parse",
            "-locations", paths.coordinates.resolve(),
            "-header", "false",
            "-tree", paths.tree.resolve(),
            "-locationTrait", TRAIT_NAME,
            "-intervals", "10",
            "-mrsd", mrsd,
            "-geojson", self.tools.world_geojson,
            "-output", paths.visualization.resolve(),
        ]
        try:
            exit_code = await self.runner.run_tool(
                job.job_id, "spread3", argv, paths.log, cwd=jar.parent,
            )
        except ExternalToolError as e:
            logger.error(f"SpreaD3 could not be started: {e.message}")
            return False

        if exit_code != 0:
            logger.error(f"SpreaD3 generation failed! with code: {exit_code}")
            return False
        return _has_content(paths.visualization)

    async def _glm_figure(self, job: Job, paths: JobPaths) -> bool:
        """
        Plot the GLM predictor support: log summary, table cleanup, R figure.
        Failures are logged; the job still delivers its tree.
        """
        steps = [
            ("loganalyser", [
                *self.tools.loganalyser_cmd,
                paths.rate_log.resolve(),
                paths.glm_summary.resolve(),
            ]),
            ("glm_table", [
                Path(self.tools.glm_table_script).resolve(),
                paths.glm_summary.resolve(),
                paths.glm_table.resolve(),
            ]),
            ("glm_figure", [
                *self.tools.rscript_cmd,
                Path(self.tools.glm_figure_script).resolve(),
                paths.glm_table.resolve(),
                paths.predictor_names.resolve(),
                paths.glm_figure.resolve(),
            ]),
        ]
        logger.info("Running GLM figure generator")
        try:
            for tool, argv in steps:
                await self.runner.run_checked(
                    job.job_id, tool, argv, paths.log, cwd=paths.work_dir,
                )
        except ExternalToolError as e:
            logger.error(f"GLM figure generation failed: {e.message}")
            return False

        if not _has_content(paths.glm_figure):
            logger.error(f"GLM figure generator did not write {paths.glm_figure.name}")
            return False
        return True

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def template_name(model: ModelParameters) -> str:
        """Model generator template for the chosen substitution/clock/prior."""
        substitution = model.substitution_model.value
        if model.gamma:
            substitution += "+G"
        if model.invariant_sites:
            substitution += "+I"
        return (
            f"beastgen_{substitution}_{model.clock_model.value}"
            f"_{model.tree_prior.value}.template"
        )


__all__ = ["PipelineOrchestrator", "GLM_PROMPT_ANSWERS"]

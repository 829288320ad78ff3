# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for tool paths, job directories, policy bounds
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for the external tools, the per-job file layout and the
disjoint-resolution policy. Every value can be overridden via environment
variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides via from_env()
- One cached Defaults instance (get_defaults / reset_defaults)
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class ToolDefaults:
    """
    Command lines for the external numerical tools.

    Each command is a tuple of argv prefix tokens; stage-specific arguments
    are appended by the stage runner.
    """
    aligner_cmd: Tuple[str, ...] = ("mafft", "--auto", "--inputorder")
    beastgen_cmd: Tuple[str, ...] = ("java", "-jar", "beastgen.jar")
    beastgen_dir: str = "./BeastGen"
    beast_cmd: Tuple[str, ...] = ("beast",)
    treeannotator_cmd: Tuple[str, ...] = ("treeannotator",)
    spread3_jar: str = "spread3.jar"
    world_geojson: str = "world.geojson"
    glm_script: str = "beast_glm.py"

    # GLM figure: log summary, table cleanup, R plot
    loganalyser_cmd: Tuple[str, ...] = ("loganalyser",)
    glm_table_script: str = "make_table.sh"
    rscript_cmd: Tuple[str, ...] = ("Rscript", "--vanilla")
    glm_figure_script: str = "make_predictor_fig.R"

    # BEAST options for the conservative fallback attempt
    fallback_args: Tuple[str, ...] = ("-beagle_scaling", "always", "-overwrite")
    burnin: int = 1000

    @classmethod
    def from_env(cls) -> "ToolDefaults":
        """Create from environment variables."""
        defaults = cls()
        return cls(
            aligner_cmd=_split_env("ALIGNER_CMD", defaults.aligner_cmd),
            beastgen_cmd=_split_env("BEASTGEN_CMD", defaults.beastgen_cmd),
            beastgen_dir=os.getenv("BEASTGEN_DIR", defaults.beastgen_dir),
            beast_cmd=_split_env("BEAST_CMD", defaults.beast_cmd),
            treeannotator_cmd=_split_env("TREEANNOTATOR_CMD", defaults.treeannotator_cmd),
            spread3_jar=os.getenv("SPREAD3_JAR", defaults.spread3_jar),
            world_geojson=os.getenv("WORLD_GEOJSON", defaults.world_geojson),
            glm_script=os.getenv("GLM_SCRIPT", defaults.glm_script),
            loganalyser_cmd=_split_env("LOGANALYSER_CMD", defaults.loganalyser_cmd),
            glm_table_script=os.getenv("GLM_TABLE_SCRIPT", defaults.glm_table_script),
            rscript_cmd=_split_env("RSCRIPT_CMD", defaults.rscript_cmd),
            glm_figure_script=os.getenv("GLM_FIGURE_SCRIPT", defaults.glm_figure_script),
            burnin=int(os.getenv("TREEANNOTATOR_BURNIN", defaults.burnin)),
        )


@dataclass(frozen=True)
class PipelineDefaults:
    """
    Defaults for job execution.

    Controls the per-job file layout and watcher behaviour.
    """
    work_dir: str = "./jobs"
    logs_dir: str = "./logs"

    # Log tailing
    watcher_poll_interval: float = 5.0  # seconds

    # Inference health checks
    fatal_signature: str = (
        "java.lang.RuntimeException: An error was encounted. Terminating BEAST"
    )
    rate_markers: Tuple[str, ...] = ("hours/million states", "minutes/million states")
    progress_checkpoints: Tuple[float, ...] = (0.1, 0.5)
    remaining_fractions: Tuple[float, ...] = (0.9, 0.5)
    max_progress_notifications: int = 2

    # Degenerate rate matrix detection
    rate_check_fraction: float = 1 / 500
    trivial_rate_value: float = 1.0

    # Submission limits
    max_records: int = 1000

    # Notifications
    webhook_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "PipelineDefaults":
        """Create from environment variables."""
        return cls(
            work_dir=os.getenv("JOB_WORK_DIR", "./jobs"),
            logs_dir=os.getenv("JOB_LOGS_DIR", "./logs"),
            watcher_poll_interval=float(os.getenv("WATCHER_POLL_INTERVAL_SEC", 5.0)),
            max_records=int(os.getenv("JOB_MAX_RECORDS", 1000)),
            webhook_url=os.getenv("NOTIFY_WEBHOOK_URL") or None,
        )


@dataclass(frozen=True)
class DisjoinerDefaults:
    """
    Defaults for disjoint location resolution.
    """
    max_states: int = 25
    min_states: int = 2

    # JSON file: record id -> list of ancestor geoname ids
    ancestors_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DisjoinerDefaults":
        """Create from environment variables."""
        return cls(
            max_states=int(os.getenv("JOB_MAX_LOCATIONS", 25)),
            ancestors_file=os.getenv("ANCESTORS_FILE") or None,
        )


def _split_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Read a whitespace-separated command line from the environment."""
    value = os.getenv(name)
    if not value:
        return default
    return tuple(value.split())


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    tools: ToolDefaults = field(default_factory=ToolDefaults)
    pipeline: PipelineDefaults = field(default_factory=PipelineDefaults)
    disjoiner: DisjoinerDefaults = field(default_factory=DisjoinerDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            tools=ToolDefaults.from_env(),
            pipeline=PipelineDefaults.from_env(),
            disjoiner=DisjoinerDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ToolDefaults",
    "PipelineDefaults",
    "DisjoinerDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]

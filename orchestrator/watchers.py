# ============================================================================
# LOG WATCHERS
# ============================================================================
# STATUS: Orchestrator - Cooperative log tailing during inference
# PURPOSE: Progress estimates, fatal-error detection, degenerate-model kill
# CREATED: 19 OCT 2026
# ============================================================================
"""
Log Watchers

A LogTailer is a cooperative poller over a growing text file. It runs as an
asyncio task owned by the job task, reads newly appended complete lines
every poll interval and hands each one to handle_line().

Lifecycle is explicit:
    watcher = InferenceHealthWatcher(...)
    watcher.start()
    try:
        ... run the inference process ...
    finally:
        await watcher.stop()     # final drain, then the task exits

Watchers:
    InferenceHealthWatcher   job log: progress notifications (at most two)
                             and the fatal runtime-error signature
    DegenerateModelWatcher   rate log: kills the job if the rate matrix is
                             still at its initial values after the first
                             checkpoint
"""

import asyncio
import math
import re
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from core.config import PipelineDefaults
from core.exceptions import DegenerateModelError, JobNotFoundError
from core.logging import get_logger
from infrastructure.process_registry import ProcessRegistry

logger = get_logger(__name__)


# (hours_remaining, final) -> None
ProgressCallback = Callable[[int, bool], Union[None, Awaitable[None]]]

# Rate-parameter columns ("states.rates1", ...); indicators and counts excluded
RATE_COLUMN = re.compile(r"\.rates\d*$")


class LogTailer:
    """
    Cooperative poller over an append-only text file.

    The file may not exist yet when the tailer starts. Partial trailing
    lines are held back until their newline arrives (or until the final
    drain on stop).
    """

    def __init__(self, path: Union[str, Path], poll_interval: float = 5.0):
        self.path = Path(path)
        self.poll_interval = poll_interval
        self._offset = 0
        self._partial = ""
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._done = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Start polling in a background task."""
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name=f"tail:{self.path.name}")

    async def stop(self) -> None:
        """Signal the poller, wait for its final drain and exit."""
        self._stop_event.set()
        if self._task is not None:
            task, self._task = self._task, None
            await task

    def finish(self) -> None:
        """Stop dispatching lines; the poll loop exits on its next wakeup."""
        self._done = True
        self._stop_event.set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self.drain()
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.poll_interval,
                )
            except asyncio.TimeoutError:
                pass  # Continue polling
        await self.drain(final=True)

    # =========================================================================
    # READING
    # =========================================================================

    def read_new_lines(self, final: bool = False) -> List[str]:
        """Complete lines appended since the last read."""
        if not self.path.exists():
            return []
        if self.path.stat().st_size < self._offset:
            # Rewritten from scratch (e.g. an -overwrite rerun)
            self._offset, self._partial = 0, ""
        with self.path.open("r", encoding="utf-8", errors="replace") as handle:
            handle.seek(self._offset)
            chunk = handle.read()
            self._offset = handle.tell()
        if not chunk and not (final and self._partial):
            return []

        text = self._partial + chunk
        lines = text.split("\n")
        self._partial = lines.pop()
        if final and self._partial:
            lines.append(self._partial)
            self._partial = ""
        return [line.rstrip("\r") for line in lines]

    async def drain(self, final: bool = False) -> None:
        """Dispatch every complete line currently available."""
        for line in self.read_new_lines(final=final):
            if self._done:
                return
            result = self.handle_line(line)
            if asyncio.iscoroutine(result):
                await result

    def handle_line(self, line: str) -> Union[None, Awaitable[None]]:
        """Override in subclasses."""
        return None


def parse_sample(line: str) -> Optional[int]:
    """Sample number from the first tab-separated column, if numeric."""
    first = line.strip().split("\t", 1)[0].strip()
    try:
        return int(first)
    except ValueError:
        return None


class InferenceHealthWatcher(LogTailer):
    """
    Tails the job log while the inference engine runs.

    - Lines reporting "<rate> hours/million states" (or minutes) after the
      next checkpoint (10% then 50% of the chain) produce a progress
      notification with an estimate of the hours remaining.
    - A line containing the fatal runtime-error signature marks the current
      attempt as failed even if the engine exits 0.

    One watcher spans both inference attempts so the two-notification cap
    holds per job; begin_attempt() clears the fatal flag between them.
    """

    def __init__(
        self,
        log_path: Union[str, Path],
        chain_length: int,
        on_progress: Optional[ProgressCallback] = None,
        config: Optional[PipelineDefaults] = None,
    ):
        config = config or PipelineDefaults()
        super().__init__(log_path, poll_interval=config.watcher_poll_interval)
        self.chain_length = chain_length
        self.on_progress = on_progress
        self.config = config
        self.fatal_seen = False
        self.notifications_sent = 0

    def begin_attempt(self) -> None:
        """Forget fatal signatures seen by a previous attempt."""
        self.fatal_seen = False

    @property
    def next_checkpoint(self) -> Optional[int]:
        """Sample threshold for the next progress notification."""
        if self.notifications_sent >= self.config.max_progress_notifications:
            return None
        fraction = self.config.progress_checkpoints[self.notifications_sent]
        return int(self.chain_length * fraction)

    def estimate_hours_remaining(self, hours_per_million: float) -> int:
        """Hours left, from the latest rate and the share of chain left."""
        millions = max(1, self.chain_length // 1_000_000)
        remaining = self.config.remaining_fractions[self.notifications_sent]
        return math.ceil(hours_per_million * millions * remaining)

    async def handle_line(self, line: str) -> None:
        if self.config.fatal_signature in line:
            if not self.fatal_seen:
                logger.warning("Inference reported a fatal runtime error")
            self.fatal_seen = True
            return

        if not any(marker in line for marker in self.config.rate_markers):
            return

        checkpoint = self.next_checkpoint
        sample = parse_sample(line)
        if checkpoint is None or sample is None or sample < checkpoint:
            return

        rate = parse_rate(line)
        if rate is None:
            logger.warning(f"Failed to extract inference rate from: {line.strip()}")
            return

        hours = self.estimate_hours_remaining(rate)
        final = self.notifications_sent == self.config.max_progress_notifications - 1
        self.notifications_sent += 1
        logger.info(f"Inference at sample {sample}: ~{hours}h remaining")

        if self.on_progress is not None:
            result = self.on_progress(hours, final)
            if asyncio.iscoroutine(result):
                await result


def parse_rate(line: str) -> Optional[float]:
    """Hours per million samples from the last tab-separated column."""
    last = line.strip().split("\t")[-1].strip()
    number, _, unit = last.partition(" ")
    try:
        value = float(number)
    except ValueError:
        return None
    if unit.startswith("minutes"):
        value = value / 60
    return value


class DegenerateModelWatcher(LogTailer):
    """
    Tails the rate-matrix log while the inference engine runs.

    At the first data row whose sample reaches chain_length / 500, if every
    rate value still equals the initial value (1.0) the model cannot learn
    anything from the data; the job is killed through the registry. The
    check runs once, then the watcher goes quiet.

    The log also carries indicator and non-zero-count columns. When the
    header row names rate columns only those are checked; a header with no
    rate columns checks every value.
    """

    def __init__(
        self,
        rate_log_path: Union[str, Path],
        job_id: str,
        chain_length: int,
        registry: ProcessRegistry,
        config: Optional[PipelineDefaults] = None,
    ):
        config = config or PipelineDefaults()
        super().__init__(rate_log_path, poll_interval=config.watcher_poll_interval)
        self.job_id = job_id
        self.chain_length = chain_length
        self.registry = registry
        self.config = config
        self.checked = False
        self.triggered = False
        self.columns: Optional[Tuple[int, ...]] = None

    @property
    def checkpoint(self) -> int:
        return int(self.chain_length * self.config.rate_check_fraction)

    def handle_line(self, line: str) -> None:
        if self.checked or line.startswith("#"):
            return
        sample = parse_sample(line)
        if sample is None:
            if self.columns is None and line.strip():
                self.columns = rate_columns(line)
            return
        if sample < self.checkpoint:
            return

        self.checked = True
        values = parse_values(line)
        if self.columns is not None:
            values = tuple(values[index] for index in self.columns if index < len(values))
        if values and all(value == self.config.trivial_rate_value for value in values):
            self.trigger()
        self.finish()

    def trigger(self) -> None:
        reason = DegenerateModelError.default_user_message
        logger.warning(f"Degenerate rate matrix for job {self.job_id}; killing")
        self.triggered = True
        try:
            self.registry.kill(self.job_id, reason=reason)
        except JobNotFoundError:
            logger.info(f"Job {self.job_id} had no running process to kill")


def rate_columns(header: str) -> Optional[Tuple[int, ...]]:
    """Positions of the rate columns among the value columns, None if there are none."""
    names = header.strip().split("\t")[1:]
    indices = tuple(
        index for index, name in enumerate(names) if RATE_COLUMN.search(name.strip())
    )
    return indices or None


def parse_values(line: str) -> Tuple[float, ...]:
    """Numeric value columns of a rate-log row (sample column excluded)."""
    columns = line.strip().split("\t")[1:]
    values = []
    for column in columns:
        try:
            values.append(float(column.strip()))
        except ValueError:
            return ()
    return tuple(values)


__all__ = [
    "LogTailer",
    "InferenceHealthWatcher",
    "DegenerateModelWatcher",
    "ProgressCallback",
    "parse_sample",
    "parse_rate",
    "parse_values",
    "rate_columns",
]

# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# STATUS: Tests - Fake external tools and pipeline wiring
# PURPOSE: Run the orchestrator end to end without any real binaries
# CREATED: 19 OCT 2026
# ============================================================================
"""
Shared Test Fixtures

FakeToolbox stands in for asyncio.create_subprocess_exec. Each spawned
"tool" is recognized from its argv, writes the artifacts the real tool
would write (aligned FASTA, model file, trees, tree, visualization) and
returns a FakeProcess.

Inference behaviour is scripted per attempt via toolbox.beast_script:
    "ok"          trees written, exit 0
    "no_trees"    exit 0, no trees file
    "fatal"       trees written, fatal signature in the log, exit 0
    "exit1"       exit 1
    "hang"        runs until terminated
    "degenerate"  writes an untouched rate-log row, then runs until terminated

The GLM figure tools (loganalyser, make_table.sh, Rscript) each write their
output file; toolbox.exit_codes fails any tool by name.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from core.config import Defaults, DisjoinerDefaults, PipelineDefaults, ToolDefaults
from core.models import GeoLocation, Job, JobParameters, JobRecord
from infrastructure.process_registry import ProcessRegistry
from orchestrator.pipeline import PipelineOrchestrator
from orchestrator.stages import JobPaths
from services.ancestors import InMemoryAncestorResolver
from services.formats import read_fasta
from services.notifier import LoggingNotifier

FATAL_LINE = "java.lang.RuntimeException: An error was encounted. Terminating BEAST\n"

# Rate log as the model builder's rateMatrixLog writes it for three states:
# three rates, three indicators and the non-zero count
RATE_LOG_HEADER = (
    "state\tstates.rates1\tstates.rates2\tstates.rates3"
    "\tstates.indicators1\tstates.indicators2\tstates.indicators3\tstates.nonZeroRates\n"
)
UNTOUCHED_RATES = "1.0\t1.0\t1.0\t1.0\t1.0\t1.0\t3.0"

MODEL_TEMPLATE = """<?xml version="1.0" standalone="yes"?>
<beast>
  <taxa id="taxa">
{taxa}
  </taxa>
  <treeModel id="treeModel"/>
  <operators id="operators">
    <scaleOperator scaleFactor="0.75" weight="3"/>
  </operators>
  <mcmc id="mcmc" chainLength="10000000">
    <posterior id="posterior">
      <likelihood id="likelihood">
        <treeLikelihood idref="treeLikelihood"/>
      </likelihood>
    </posterior>
    <log id="screenLog" logEvery="1000"/>
    <logTree id="treeFileLog" logEvery="1000" fileName="placeholder.trees"/>
  </mcmc>
</beast>
"""


# ============================================================================
# FAKE PROCESSES
# ============================================================================

class FakeProcess:
    """Minimal asyncio.subprocess.Process lookalike."""

    def __init__(self, exit_code: int = 0, hang: bool = False):
        self.exit_code = exit_code
        self.returncode: Optional[int] = None
        self.terminated = False
        self.stdin_data: Optional[bytes] = None
        self._released = asyncio.Event()
        if not hang:
            self._released.set()

    async def wait(self) -> int:
        await self._released.wait()
        if self.returncode is None:
            self.returncode = self.exit_code
        return self.returncode

    async def communicate(self, data: Optional[bytes] = None):
        self.stdin_data = data
        await self.wait()
        return None, None

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15
        self._released.set()


@dataclass
class ToolCall:
    tool: str
    argv: List[str]
    cwd: Optional[str]
    process: FakeProcess = None


@dataclass
class FakeToolbox:
    """Records every spawn and fakes each tool's output."""

    beast_script: List[str] = field(default_factory=list)
    exit_codes: Dict[str, int] = field(default_factory=dict)
    progress_lines: List[str] = field(default_factory=list)
    calls: List[ToolCall] = field(default_factory=list)

    async def spawn(self, *argv, stdin=None, stdout=None, stderr=None, cwd=None):
        argv = list(argv)
        tool = self._tool_for(argv)
        call = ToolCall(tool, argv, cwd)
        self.calls.append(call)
        call.process = getattr(self, f"_run_{tool}")(argv, Path(cwd) if cwd else None, stdout)
        return call.process

    def invocations(self, tool: str) -> List[List[str]]:
        return [call.argv for call in self.calls if call.tool == tool]

    def call_for(self, tool: str) -> ToolCall:
        return next(call for call in self.calls if call.tool == tool)

    @staticmethod
    def _tool_for(argv: List[str]) -> str:
        if argv[0] == "mafft":
            return "aligner"
        if "beastgen.jar" in argv:
            return "beastgen"
        if argv[0] == "python3":
            return "glm"
        if argv[0] == "beast":
            return "beast"
        if argv[0] == "treeannotator":
            return "treeannotator"
        if argv[0] == "loganalyser":
            return "loganalyser"
        if argv[0].endswith("make_table.sh"):
            return "glm_table"
        if argv[0] == "Rscript":
            return "glm_figure"
        if "-parse" in argv:
            return "spread3"
        raise AssertionError(f"Unexpected command: {argv}")

    def _exit(self, tool: str) -> int:
        return self.exit_codes.get(tool, 0)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def _run_aligner(self, argv, cwd, stdout) -> FakeProcess:
        code = self._exit("aligner")
        if code == 0:
            stdout.write(Path(argv[-1]).read_bytes())
            stdout.flush()
        return FakeProcess(code)

    def _run_beastgen(self, argv, cwd, stdout) -> FakeProcess:
        code = self._exit("beastgen")
        if code == 0:
            labels = [label for label, _ in read_fasta(argv[-2])]
            taxa = "\n".join(f'    <taxon id="{label}"/>' for label in labels)
            Path(argv[-1]).write_text(MODEL_TEMPLATE.format(taxa=taxa), encoding="utf-8")
        return FakeProcess(code)

    def _run_glm(self, argv, cwd, stdout) -> FakeProcess:
        code = self._exit("glm")
        if code == 0:
            model = cwd / argv[2]
            (cwd / argv[2].replace(".xml", "_GLMedits.xml")).write_bytes(model.read_bytes())
        return FakeProcess(code)

    def _run_beast(self, argv, cwd, stdout) -> FakeProcess:
        behaviour = self.beast_script.pop(0) if self.beast_script else "ok"
        name = argv[-1]
        glm = name.endswith("_GLMedits.xml")
        job_id = name[: -len("_GLMedits.xml")] if glm else name[: -len(".xml")]
        paths = JobPaths(job_id, cwd.parent, cwd.parent, glm)

        def log(text: str) -> None:
            stdout.write(text.encode("utf-8"))
            stdout.flush()

        for line in self.progress_lines:
            log(line)

        if behaviour == "exit1":
            return FakeProcess(1)
        if behaviour == "no_trees":
            return FakeProcess(0)
        if behaviour == "hang":
            return FakeProcess(0, hang=True)
        if behaviour == "degenerate":
            paths.rate_log.write_text(
                f"# BEAST v1.10.4\n{RATE_LOG_HEADER}"
                f"0\t{UNTOUCHED_RATES}\n20000\t{UNTOUCHED_RATES}\n",
                encoding="utf-8",
            )
            return FakeProcess(0, hang=True)

        paths.trees.write_text("#NEXUS\nbegin trees;\nend;\n", encoding="utf-8")
        if behaviour == "fatal":
            log(FATAL_LINE)
        return FakeProcess(0)

    def _run_treeannotator(self, argv, cwd, stdout) -> FakeProcess:
        code = self._exit("treeannotator")
        if code == 0:
            Path(argv[-1]).write_text("#NEXUS\nbegin trees;\ntree TREE1 = (A,B);\nend;\n")
        return FakeProcess(code)

    def _run_spread3(self, argv, cwd, stdout) -> FakeProcess:
        code = self._exit("spread3")
        if code == 0:
            Path(argv[argv.index("-output") + 1]).write_text("{}", encoding="utf-8")
        return FakeProcess(code)

    def _write_last(self, tool: str, argv, text: str) -> FakeProcess:
        code = self._exit(tool)
        if code == 0:
            Path(argv[-1]).write_text(text, encoding="utf-8")
        return FakeProcess(code)

    def _run_loganalyser(self, argv, cwd, stdout) -> FakeProcess:
        return self._write_last("loganalyser", argv, "summary\n")

    def _run_glm_table(self, argv, cwd, stdout) -> FakeProcess:
        return self._write_last("glm_table", argv, "table\n")

    def _run_glm_figure(self, argv, cwd, stdout) -> FakeProcess:
        return self._write_last("glm_figure", argv, "%PDF-1.4\n")


# ============================================================================
# RECORDS
# ============================================================================

US_ANCESTORS = [6295630, 6255149, 6252001]

SAMPLE_LOCATIONS = [
    ("KX000001", GeoLocation(geoname_id=5549030, name="Utah", feature_type="ADM1",
                             latitude=39.5, longitude=-111.5), "2014.5"),
    ("KX000002", GeoLocation(geoname_id=5509151, name="Nevada", feature_type="ADM1",
                             latitude=39.25, longitude=-116.75), "2015.25"),
    ("KX000003", GeoLocation(geoname_id=5128638, name="New York", feature_type="ADM1",
                             latitude=43.0, longitude=-75.5), "2016.0"),
]


def sample_records() -> List[JobRecord]:
    return [
        JobRecord(record_id=record_id, sequence="ACGTACGTAC", collection_date=date, location=location)
        for record_id, location, date in SAMPLE_LOCATIONS
    ]


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def defaults(tmp_path) -> Defaults:
    return Defaults(
        tools=ToolDefaults(),
        pipeline=PipelineDefaults(
            work_dir=str(tmp_path / "jobs"),
            logs_dir=str(tmp_path / "logs"),
            watcher_poll_interval=0.01,
        ),
        disjoiner=DisjoinerDefaults(),
    )


@pytest.fixture
def toolbox() -> FakeToolbox:
    return FakeToolbox()


@pytest.fixture
def resolver() -> InMemoryAncestorResolver:
    return InMemoryAncestorResolver({
        record_id: US_ANCESTORS for record_id, _, _ in SAMPLE_LOCATIONS
    })


@pytest.fixture
def make_orchestrator(defaults, toolbox, resolver):
    def factory(notifier=None, registry=None, **kwargs) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            registry if registry is not None else ProcessRegistry(),
            notifier if notifier is not None else LoggingNotifier(),
            resolver,
            defaults=defaults,
            spawn=toolbox.spawn,
            **kwargs,
        )
    return factory


@pytest.fixture
def make_job():
    def factory(**parameters) -> Job:
        return Job(
            job_name="test job",
            reply_email="someone@example.org",
            parameters=JobParameters(**parameters),
            records=sample_records(),
        )
    return factory


@pytest.fixture
def fake_process():
    """The FakeProcess class, for tests that build their own spawn function."""
    return FakeProcess

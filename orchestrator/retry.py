# ============================================================================
# INFERENCE RETRY POLICY
# ============================================================================
# STATUS: Orchestrator - Two-attempt retry state machine
# PURPOSE: Decide succeed / retry / fail after each inference attempt
# CREATED: 19 OCT 2026
# ============================================================================
"""
Inference Retry Policy

The inference engine sometimes exits 0 without writing its trees file, or
dies with a known runtime error text while still exiting 0. Both usually
clear up when rerun with the conservative "always rescale" numerical
configuration. The policy is a fixed two-attempt state machine:

    DEFAULT  --exit != 0-------------------------------> FAIL
    DEFAULT  --artifact present, no fatal signature----> SUCCEED
    DEFAULT  --artifact missing or fatal signature-----> RETRY (FALLBACK)
    FALLBACK --exit 0, artifact present, no signature--> SUCCEED
    FALLBACK --anything else---------------------------> FAIL

Only the inference stage retries. Every other stage fails on the first
non-zero exit.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Attempt(str, Enum):
    """Which inference configuration an attempt runs with."""
    DEFAULT = "default"
    FALLBACK = "fallback"


class RetryAction(str, Enum):
    SUCCEED = "succeed"
    RETRY = "retry"
    FAIL = "fail"


@dataclass(frozen=True)
class AttemptOutcome:
    """What one inference attempt produced."""
    attempt: Attempt
    exit_code: int
    artifact_present: bool
    fatal_signature: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.artifact_present and not self.fatal_signature

    def describe(self) -> str:
        if self.exit_code != 0:
            return f"exited with code {self.exit_code}"
        if self.fatal_signature:
            return "reported a fatal runtime error"
        if not self.artifact_present:
            return "did not produce output"
        return "succeeded"


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    reason: str
    next_attempt: Optional[Attempt] = None


class InferenceRetryPolicy:
    """Stateless: each decision depends only on the outcome passed in."""

    first_attempt = Attempt.DEFAULT

    def decide(self, outcome: AttemptOutcome) -> RetryDecision:
        if outcome.succeeded:
            return RetryDecision(RetryAction.SUCCEED, f"{outcome.attempt.value} attempt succeeded")

        if outcome.attempt == Attempt.DEFAULT and outcome.exit_code == 0:
            return RetryDecision(
                RetryAction.RETRY,
                f"Inference {outcome.describe()}; retrying with always-scaling",
                next_attempt=Attempt.FALLBACK,
            )

        prefix = "Always-scaling inference" if outcome.attempt == Attempt.FALLBACK else "Inference"
        return RetryDecision(RetryAction.FAIL, f"{prefix} {outcome.describe()}")


__all__ = [
    "Attempt",
    "RetryAction",
    "AttemptOutcome",
    "RetryDecision",
    "InferenceRetryPolicy",
]

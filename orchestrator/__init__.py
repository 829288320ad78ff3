# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# STATUS: Core - Job execution
# PURPOSE: Drive each job through the external tool pipeline
# CREATED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Module

One asyncio task per job drives the stage sequence.

Usage:
    from orchestrator import PipelineOrchestrator

    orchestrator = PipelineOrchestrator(registry, notifier, resolver)
    job = await orchestrator.run(job)
"""

from .pipeline import PipelineOrchestrator
from .retry import Attempt, InferenceRetryPolicy, RetryAction
from .stages import JobPaths, StageRunner

__all__ = [
    "PipelineOrchestrator",
    "InferenceRetryPolicy",
    "Attempt",
    "RetryAction",
    "JobPaths",
    "StageRunner",
]

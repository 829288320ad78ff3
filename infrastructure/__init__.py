# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# STATUS: Infrastructure - Process bookkeeping
# PURPOSE: Shared, thread-safe runtime state for the pipeline service
# CREATED: 19 OCT 2026
# ============================================================================
"""
Infrastructure module for the pipeline service.

Provides:
- ProcessRegistry: job id -> running external process, shared by the
  orchestrator and the stop endpoint

Usage:
    from infrastructure import ProcessRegistry

    registry = ProcessRegistry()
    orchestrator = PipelineOrchestrator(registry=registry, ...)
"""

from infrastructure.process_registry import ProcessHandle, ProcessRegistry

__all__ = [
    "ProcessHandle",
    "ProcessRegistry",
]

# ============================================================================
# SERVICES MODULE
# ============================================================================
# STATUS: Core - Business logic layer
# PURPOSE: Collaborators of the pipeline: lookups, files, notifications
# CREATED: 19 OCT 2026
# ============================================================================
"""
Services Module

Leaf services used by the orchestrator. JobService sits above the
orchestrator and is imported from services.job_service directly.

Usage:
    from services import InMemoryAncestorResolver, build_notifier
    from services.job_service import JobService
"""

from .ancestors import AncestorResolver, InMemoryAncestorResolver, JobAncestorResolver
from .model_builder import ModelBuilder
from .notifier import LoggingNotifier, Notifier, WebhookNotifier, build_notifier
from .preflight import JobPreflightValidator, PreflightResult

__all__ = [
    "AncestorResolver",
    "InMemoryAncestorResolver",
    "JobAncestorResolver",
    "ModelBuilder",
    "Notifier",
    "LoggingNotifier",
    "WebhookNotifier",
    "build_notifier",
    "JobPreflightValidator",
    "PreflightResult",
]

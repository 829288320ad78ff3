# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the pipeline service.
"""

from core.config.defaults import (
    ToolDefaults,
    PipelineDefaults,
    DisjoinerDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "ToolDefaults",
    "PipelineDefaults",
    "DisjoinerDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]

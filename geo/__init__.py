"""
Geo Module

Feature-type hierarchy, US state table and the disjoint location resolver.

Usage:
    from geo import GeonameDisjointer, get_hierarchy
"""

from .disjointer import GeonameDisjointer
from .hierarchy import GeoHierarchy, get_hierarchy
from .states import US_STATES, canonical_state, match_state

__all__ = [
    "GeonameDisjointer",
    "GeoHierarchy",
    "get_hierarchy",
    "US_STATES",
    "canonical_state",
    "match_state",
]

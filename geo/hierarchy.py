# ============================================================================
# GEONAME FEATURE-TYPE HIERARCHY
# ============================================================================
# STATUS: Geo - Static feature-type DAG
# PURPOSE: Answer "is type A an ancestor type of type B"
# CREATED: 19 OCT 2026
# EXPORTS: GeoHierarchy, HierarchyNode, get_hierarchy
# ============================================================================
"""
Geoname Feature-Type Hierarchy

A fixed DAG over geonames feature codes, organized in strict bands:

    CONT
      -> PCLI PCL PCLH PCLD                 (country variants)
      -> ADM1 ADM1H ADMD                    (first-level divisions)
      -> ADM2 ADM2H
      -> ADM3
      -> ADM4
      -> PPL PPLC PPLA PPLA2 PPLA3 PPLA4 PPLX  (populated places)

Every node in a band lists every node of the band above as a parent, so
walking up any single parent edge per step visits the same band sequence.
Unknown codes are treated as PPLX.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


ROOT_TYPE = "CONT"
CATCH_ALL_TYPE = "PPLX"

# Top to bottom. Each band's parents are every node of the band above.
BANDS: Tuple[Tuple[str, ...], ...] = (
    (ROOT_TYPE,),
    ("PCLI", "PCL", "PCLH", "PCLD"),
    ("ADM1", "ADM1H", "ADMD"),
    ("ADM2", "ADM2H"),
    ("ADM3",),
    ("ADM4",),
    ("PPL", "PPLC", "PPLA", "PPLA2", "PPLA3", "PPLA4", CATCH_ALL_TYPE),
)


@dataclass
class HierarchyNode:
    """One feature code and its parent codes (first parent first)."""
    feature_type: str
    parents: List["HierarchyNode"] = field(default_factory=list)

    def has_parent(self, other: "HierarchyNode") -> bool:
        return any(parent is other for parent in self.parents)


class GeoHierarchy:
    """
    Static feature-type DAG.

    Pure: no state beyond the node table built in __init__.
    """

    def __init__(self, bands: Tuple[Tuple[str, ...], ...] = BANDS):
        self._nodes: Dict[str, HierarchyNode] = {}
        self._bands: Dict[str, int] = {}
        above: List[HierarchyNode] = []
        for index, band in enumerate(bands):
            current = []
            for feature_type in band:
                node = HierarchyNode(feature_type, parents=list(above))
                self._nodes[feature_type] = node
                self._bands[feature_type] = index
                current.append(node)
            above = current
        self._root = self._nodes[bands[0][0]]

    def node(self, feature_type: Optional[str]) -> HierarchyNode:
        """Node for a code, falling back to the catch-all populated place."""
        return self._nodes.get(feature_type or "", self._nodes[CATCH_ALL_TYPE])

    def is_parent(self, child_type: Optional[str], parent_type: Optional[str]) -> bool:
        """
        True if parent_type is a strict ancestor type of child_type.

        False when parent_type is unknown or resolves to the same node as
        child_type.
        """
        parent = self._nodes.get(parent_type or "")
        child = self.node(child_type)
        if parent is None or parent is child:
            return False
        while child is not self._root:
            if child.has_parent(parent):
                return True
            child = child.parents[0]
        return False

    def band_of(self, feature_type: Optional[str]) -> int:
        """Depth of the code's band (0 = continent); unknown codes are PPLX."""
        return self._bands[self.node(feature_type).feature_type]

    def __contains__(self, feature_type: str) -> bool:
        return feature_type in self._nodes


_hierarchy: Optional[GeoHierarchy] = None


def get_hierarchy() -> GeoHierarchy:
    """Module-level shared instance."""
    global _hierarchy
    if _hierarchy is None:
        _hierarchy = GeoHierarchy()
    return _hierarchy


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["GeoHierarchy", "HierarchyNode", "get_hierarchy", "BANDS"]

# ============================================================================
# GEOGRAPHIC MODELS
# ============================================================================
# STATUS: Core model - Locations and disjoint resolution results
# PURPOSE: Typed containers passed between the disjointer and the pipeline
# CREATED: 19 OCT 2026
# EXPORTS: GeoLocation, ExcludedRecord, DisjointResult
# DEPENDENCIES: pydantic
# ============================================================================
"""
Geographic Models

GeoLocation is a gazetteer (geonames) entry attached to a record.
Ancestor-id sets are not stored on the location; they are looked up
per-record through an AncestorResolver and treated as an immutable
snapshot for one disjoint call.
"""

from typing import TYPE_CHECKING, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

if TYPE_CHECKING:
    from core.models.job import JobRecord


class GeoLocation(BaseModel):
    """A named place from the geonames gazetteer."""

    geoname_id: int
    name: str = Field(..., min_length=1)
    feature_type: Optional[str] = Field(
        default=None,
        description="Geonames feature code (PCLI, ADM1, PPL, ...)"
    )
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    country: Optional[str] = None
    region: Optional[str] = None

    def renamed(self, name: str, geoname_id: Optional[int] = None) -> "GeoLocation":
        """Copy with a new display name (and optionally a new id)."""
        update: Dict[str, object] = {"name": name}
        if geoname_id is not None:
            update["geoname_id"] = geoname_id
        return self.model_copy(update=update)


class ExcludedRecord(BaseModel):
    """A record dropped during disjoint resolution, with the reason."""

    record_id: str
    reason: str


class DisjointResult(BaseModel):
    """
    Output of one disjoint resolution.

    partition: the accepted, pairwise-disjoint locations in acceptance order
    rewrites: rejected geoname id -> id it collapsed into
    """

    records: List["JobRecord"] = Field(default_factory=list)
    partition: List[GeoLocation] = Field(default_factory=list)
    rewrites: Dict[int, int] = Field(default_factory=dict)
    excluded: List[ExcludedRecord] = Field(default_factory=list)

    @computed_field
    @property
    def distinct_locations(self) -> int:
        return len(self.partition)

    @property
    def record_ids(self) -> List[str]:
        return [record.record_id for record in self.records]


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["GeoLocation", "ExcludedRecord", "DisjointResult"]

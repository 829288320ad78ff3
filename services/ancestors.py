# ============================================================================
# ANCESTOR RESOLVER
# ============================================================================
# STATUS: Service - Location hierarchy lookup
# PURPOSE: Record id -> geoname ids of every enclosing region
# CREATED: 19 OCT 2026
# EXPORTS: AncestorResolver, InMemoryAncestorResolver, JobAncestorResolver
# ============================================================================
"""
Ancestor Resolver

The disjointer needs, for each record, the set of geoname ids of every region
that geographically encloses the record's location. In production that comes
from a search index over the gazetteer; here it is an interface plus an
in-memory implementation used by validation fixtures and tests.

A resolver returns None (or an empty set) when a record's hierarchy is not
available. That is not an error: the disjointer drops the record. A resolver
that raises is treated as an infrastructure failure of the lookup.

The startup table is shared by every job and never written after load.
Ancestor ids submitted with a job live in a JobAncestorResolver overlay
that only that job's resolution sees.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Set, Union

from core.models import GeoLocation


class AncestorResolver(ABC):
    """Looks up enclosing-region geoname ids for a record."""

    @abstractmethod
    def find_ancestors(self, record_id: str) -> Optional[Set[int]]:
        """
        Ancestor geoname ids for the record's location.

        Returns None when the record or its hierarchy is unknown.
        """

    def find_location(self, geoname_id: int) -> Optional[GeoLocation]:
        """
        Gazetteer entry (name, feature type) for a geoname id.

        Used to lift fine locations to a coarser explicit level. Resolvers
        without a location table return None, which leaves the record at
        its own level.
        """
        return None


class InMemoryAncestorResolver(AncestorResolver):
    """Read-only dict-backed resolver. Returns copies so callers can't mutate the table."""

    def __init__(
        self,
        ancestors: Optional[Mapping[str, Iterable[int]]] = None,
        locations: Optional[Iterable[GeoLocation]] = None,
    ):
        self._ancestors: Dict[str, Set[int]] = {
            record_id: set(ids) for record_id, ids in (ancestors or {}).items()
        }
        self._locations: Dict[int, GeoLocation] = {
            location.geoname_id: location for location in (locations or ())
        }

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "InMemoryAncestorResolver":
        """
        Load an ancestor table.

        Accepts either a flat {record_id: [geoname_id, ...]} object or
        {"ancestors": {...}, "locations": [{geoname_id, name, feature_type}, ...]}.
        """
        with Path(path).open("r", encoding="utf-8") as handle:
            data = json.load(handle)

        locations = []
        if isinstance(data.get("ancestors"), dict):
            locations = [GeoLocation.model_validate(item) for item in data.get("locations", [])]
            data = data["ancestors"]
        return cls({str(record_id): ids for record_id, ids in data.items()}, locations)

    def find_ancestors(self, record_id: str) -> Optional[Set[int]]:
        ids = self._ancestors.get(record_id)
        if ids is None:
            return None
        return set(ids)

    def find_location(self, geoname_id: int) -> Optional[GeoLocation]:
        return self._locations.get(geoname_id)

    def __len__(self) -> int:
        return len(self._ancestors)


class JobAncestorResolver(AncestorResolver):
    """
    Per-job overlay: ancestor ids submitted with one job, falling back to
    the shared resolver. Nothing is written to the shared resolver.
    """

    def __init__(
        self,
        base: Optional[AncestorResolver],
        submitted: Optional[Mapping[str, Iterable[int]]] = None,
    ):
        self.base = base
        self._submitted: Dict[str, Set[int]] = {
            record_id: set(ids) for record_id, ids in (submitted or {}).items()
        }

    def find_ancestors(self, record_id: str) -> Optional[Set[int]]:
        if record_id in self._submitted:
            return set(self._submitted[record_id])
        if self.base is None:
            return None
        return self.base.find_ancestors(record_id)

    def find_location(self, geoname_id: int) -> Optional[GeoLocation]:
        if self.base is None:
            return None
        return self.base.find_location(geoname_id)

    def __len__(self) -> int:
        return len(self._submitted)


__all__ = ["AncestorResolver", "InMemoryAncestorResolver", "JobAncestorResolver"]

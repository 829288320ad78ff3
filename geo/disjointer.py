# ============================================================================
# GEONAME DISJOINTER
# ============================================================================
# STATUS: Geo - Disjoint location resolution
# PURPOSE: Reduce overlapping record locations to a pairwise-disjoint partition
# CREATED: 19 OCT 2026
# EXPORTS: GeonameDisjointer, Candidate, LEVEL_NAMES
# ============================================================================
"""
Geoname Disjointer

Discrete-trait phylogeography needs categorical states that do not overlap:
"Brooklyn" and "New York" cannot both be states. Given the records of one
job and each record's ancestor-id set, the disjointer picks a working
granularity, drops records that are coarser than it, and collapses every
remaining location into the first accepted location that encloses it.

Two passes:
    greedy      in input order, a candidate enclosed by (or equal to) an
                already-accepted location is absorbed into it
    pairwise    every accepted location enclosed by another surviving
                accepted location is removed; in default-GLM mode every
                survivor is then canonicalized onto a US state

The pairwise pass is required because greedy accumulation can accept a
child before its parent, and because canonicalization can make two
previously unrelated locations collide.

Every collapse is recorded in a rewrite map (old id -> id it collapsed
into). Retained records are renamed to the partition member their chain
ends at.

Usage:
    disjointer = GeonameDisjointer(resolver, max_states=25)
    result = disjointer.disjoin(job.records, use_default_glm=False)
    result.partition        # ordered, pairwise-disjoint locations
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from core.contracts import DisjoinerLevel
from core.exceptions import DisjointerError
from core.logging import get_logger
from core.models import DisjointResult, ExcludedRecord, GeoLocation, JobRecord
from geo.hierarchy import GeoHierarchy, get_hierarchy
from geo.states import canonical_state
from services.ancestors import AncestorResolver

logger = get_logger(__name__)


GLM_COMMON_TYPE = "ADM1"
UNKNOWN_LOCATION = "unknown"

MISSING_LOCATION = "Missing location information"
INCOMPLETE_HIERARCHY = "Incomplete location hierarchy information"
INSUFFICIENT_LEVEL = "Insufficient location information at {level} level"

LEVEL_NAMES: Dict[str, str] = {
    "PCLI": "Country",
    "ADM1": "Province/State",
    "ADM2": "County/City",
}


@dataclass(frozen=True)
class Candidate:
    """A record's location plus its ancestor ids (own id excluded)."""
    record_id: str
    location: GeoLocation
    ancestors: FrozenSet[int]

    @property
    def geoname_id(self) -> int:
        return self.location.geoname_id

    def is_enclosed_by(self, other: GeoLocation) -> bool:
        """True if other is this location or one of its ancestors."""
        return other.geoname_id == self.geoname_id or other.geoname_id in self.ancestors


class GeonameDisjointer:
    """
    Resolves one job's record locations into a disjoint partition.

    One instance may serve many jobs; disjoin() keeps no state between calls.
    """

    def __init__(
        self,
        resolver: AncestorResolver,
        max_states: int = 25,
        min_states: int = 2,
        hierarchy: Optional[GeoHierarchy] = None,
    ):
        self.resolver = resolver
        self.max_states = max_states
        self.min_states = min_states
        self.hierarchy = hierarchy or get_hierarchy()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def disjoin(
        self,
        records: Sequence[JobRecord],
        use_default_glm: bool = False,
        disjoiner_level: DisjoinerLevel = DisjoinerLevel.AUTO,
        resolver: Optional[AncestorResolver] = None,
    ) -> DisjointResult:
        """
        Resolve record locations to a disjoint partition.

        Args:
            records: Job records in upstream retrieval order
            use_default_glm: Force state-level (ADM1) granularity and
                canonicalize survivors onto US states
            disjoiner_level: Explicit granularity; AUTO picks the most
                frequent feature type. Finer records are lifted to their
                ancestor at this level when the resolver knows it.
            resolver: Lookup for this call (the instance resolver if None)

        Returns:
            DisjointResult with retained (renamed) records, partition,
            rewrite map and exclusions

        Raises:
            DisjointerError: too few / too many locations, lookup failure
            CanonicalizationError: a survivor matched no US state
        """
        if resolver is None:
            resolver = self.resolver
        candidates, excluded = self._collect(records, resolver)

        common_type = self._common_type(candidates, use_default_glm, disjoiner_level)
        logger.debug(f"Disjoining {len(candidates)} records at {common_type}")

        kept: List[Candidate] = []
        coarse_reason = INSUFFICIENT_LEVEL.format(
            level=LEVEL_NAMES.get(common_type or "", common_type)
        )
        for candidate in candidates:
            if self.hierarchy.is_parent(common_type, candidate.location.feature_type):
                excluded.append(ExcludedRecord(record_id=candidate.record_id, reason=coarse_reason))
            else:
                kept.append(candidate)

        lifted: Dict[int, int] = {}
        if not use_default_glm and disjoiner_level != DisjoinerLevel.AUTO:
            kept, lifted = self._lift(kept, common_type, resolver)

        partition, rewrites = self.reduce(kept, canonicalize=use_default_glm)
        rewrites = {**lifted, **rewrites}
        self.check_bounds(partition)

        retained = self._rename_records(records, kept, partition, rewrites)

        logger.info(
            f"Disjoint partition: {len(partition)} locations from "
            f"{len(retained)} records ({len(excluded)} excluded)"
        )
        return DisjointResult(
            records=retained,
            partition=partition,
            rewrites=rewrites,
            excluded=excluded,
        )

    def reduce(
        self,
        candidates: Sequence[Candidate],
        canonicalize: bool = False,
    ) -> Tuple[List[GeoLocation], Dict[int, int]]:
        """
        Greedy accumulation followed by pairwise collapse.

        Returns the partition (acceptance order) and the rewrite map.
        No bounds check; see check_bounds().
        """
        rewrites: Dict[int, int] = {}

        # Greedy pass: first accepted enclosing location absorbs the candidate
        accepted: List[Candidate] = []
        for candidate in candidates:
            absorber = next(
                (member for member in accepted if candidate.is_enclosed_by(member.location)),
                None,
            )
            if absorber is None:
                accepted.append(candidate)
            elif absorber.geoname_id != candidate.geoname_id:
                rewrites[candidate.geoname_id] = absorber.geoname_id

        # Pairwise pass
        removed: Set[int] = set()
        for index, member in enumerate(accepted):
            parent = next(
                (
                    other for other_index, other in enumerate(accepted)
                    if other_index != index
                    and other_index not in removed
                    and member.is_enclosed_by(other.location)
                ),
                None,
            )
            if parent is not None:
                if parent.geoname_id != member.geoname_id:
                    rewrites[member.geoname_id] = parent.geoname_id
                removed.add(index)
                continue

            if canonicalize:
                state = self._canonicalize(member)
                if state.geoname_id != member.geoname_id:
                    rewrites[member.geoname_id] = state.geoname_id
                duplicate = any(
                    other.geoname_id == state.geoname_id
                    for other_index, other in enumerate(accepted[:index])
                    if other_index not in removed
                )
                if duplicate:
                    removed.add(index)
                else:
                    accepted[index] = Candidate(member.record_id, state, member.ancestors)

        partition = [
            member.location for index, member in enumerate(accepted) if index not in removed
        ]
        return partition, rewrites

    def check_bounds(self, partition: Sequence[GeoLocation]) -> None:
        """Raise DisjointerError if the partition size is out of range."""
        size = len(partition)
        if size < self.min_states:
            user_message = f"Too few distinct locations (need at least {self.min_states}): {size}"
            if size == 1:
                user_message += f"\nLocation: {partition[0].name}"
            raise DisjointerError(f"Too few distinct locations: {size}", user_message)
        if size > self.max_states:
            lines = [
                f"Too many distinct locations (limit is {self.max_states}): {size}",
                "Locations: ",
            ]
            lines.extend(f"\t{location.name}" for location in partition)
            raise DisjointerError(f"Too many distinct locations: {size}", "\n".join(lines))

    # =========================================================================
    # STEPS
    # =========================================================================

    def _collect(
        self,
        records: Iterable[JobRecord],
        resolver: AncestorResolver,
    ) -> Tuple[List[Candidate], List[ExcludedRecord]]:
        """Drop unusable records and look up ancestors for the rest."""
        candidates: List[Candidate] = []
        excluded: List[ExcludedRecord] = []
        for record in records:
            location = record.location
            if (
                location is None
                or location.name.strip().lower() == UNKNOWN_LOCATION
                or not location.feature_type
            ):
                excluded.append(ExcludedRecord(record_id=record.record_id, reason=MISSING_LOCATION))
                continue

            try:
                ancestors = resolver.find_ancestors(record.record_id)
            except Exception as e:
                raise DisjointerError(
                    f"Error retrieving location ancestors: {e}",
                    "Error Disjointing Locations",
                ) from e

            ancestors = set(ancestors or ())
            ancestors.discard(location.geoname_id)
            if not ancestors:
                excluded.append(
                    ExcludedRecord(record_id=record.record_id, reason=INCOMPLETE_HIERARCHY)
                )
                continue

            candidates.append(Candidate(record.record_id, location, frozenset(ancestors)))
        return candidates, excluded

    def _common_type(
        self,
        candidates: Sequence[Candidate],
        use_default_glm: bool,
        disjoiner_level: DisjoinerLevel,
    ) -> Optional[str]:
        """Working granularity. Most frequent type; first seen wins ties."""
        if use_default_glm:
            return GLM_COMMON_TYPE
        if disjoiner_level != DisjoinerLevel.AUTO:
            return disjoiner_level.value

        counts: Dict[str, int] = {}
        for candidate in candidates:
            feature_type = candidate.location.feature_type
            counts[feature_type] = counts.get(feature_type, 0) + 1

        common_type, best = None, 0
        for feature_type, count in counts.items():
            if count > best:
                common_type, best = feature_type, count
        return common_type

    def _lift(
        self,
        candidates: Sequence[Candidate],
        level: str,
        resolver: AncestorResolver,
    ) -> Tuple[List[Candidate], Dict[int, int]]:
        """
        Replace each finer location with its enclosing location at level.

        Records whose ancestors include no location of that type stay at
        their own level. Returns the lifted candidates and the rewrites
        (fine id -> coarse id) they imply.
        """
        lookups: Dict[int, Optional[GeoLocation]] = {}

        def lookup(geoname_id: int) -> Optional[GeoLocation]:
            if geoname_id not in lookups:
                try:
                    lookups[geoname_id] = resolver.find_location(geoname_id)
                except Exception as e:
                    raise DisjointerError(
                        f"Error retrieving location {geoname_id}: {e}",
                        "Error Disjointing Locations",
                    ) from e
            return lookups[geoname_id]

        lifted: List[Candidate] = []
        rewrites: Dict[int, int] = {}
        for candidate in candidates:
            if candidate.location.feature_type == level:
                lifted.append(candidate)
                continue

            parent = next(
                (
                    location for location in map(lookup, sorted(candidate.ancestors))
                    if location is not None and location.feature_type == level
                ),
                None,
            )
            if parent is None:
                logger.info(f"No {level} location found for record {candidate.record_id}")
                lifted.append(candidate)
                continue

            # Only regions above the new level still enclose it
            ancestors = set()
            for geoname_id in candidate.ancestors:
                location = lookup(geoname_id)
                if (
                    geoname_id != parent.geoname_id
                    and location is not None
                    and self.hierarchy.is_parent(level, location.feature_type)
                ):
                    ancestors.add(geoname_id)

            rewrites[candidate.geoname_id] = parent.geoname_id
            lifted.append(Candidate(candidate.record_id, parent, frozenset(ancestors)))
        return lifted, rewrites

    def _canonicalize(self, member: Candidate) -> GeoLocation:
        """Map a surviving member onto its US state (same object on exact key)."""
        state_name, state_id = canonical_state(member.location.name)
        if state_name == member.location.name.strip().lower():
            return member.location
        return member.location.renamed(state_name, state_id)

    def _rename_records(
        self,
        records: Sequence[JobRecord],
        kept: Sequence[Candidate],
        partition: Sequence[GeoLocation],
        rewrites: Dict[int, int],
    ) -> List[JobRecord]:
        """Rename each kept record's location to the member its chain ends at."""
        members = {location.geoname_id: location for location in partition}
        kept_ids = {candidate.record_id for candidate in kept}

        retained: List[JobRecord] = []
        for record in records:
            if record.record_id not in kept_ids:
                continue
            member = members[self._resolve_chain(record.location.geoname_id, members, rewrites)]
            location = record.location.renamed(member.name, member.geoname_id)
            retained.append(record.model_copy(update={"location": location}))
        return retained

    @staticmethod
    def _resolve_chain(
        geoname_id: int,
        members: Dict[int, GeoLocation],
        rewrites: Dict[int, int],
    ) -> int:
        """Follow rewrites to a partition member, at most len(rewrites) steps."""
        current = geoname_id
        for _ in range(len(rewrites) + 1):
            if current in members:
                return current
            if current not in rewrites:
                break
            current = rewrites[current]
        raise DisjointerError(
            f"Location {geoname_id} does not resolve to a retained location",
            "Error Disjointing Locations",
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["GeonameDisjointer", "Candidate", "LEVEL_NAMES"]

# ============================================================================
# GEONAME DISJOINTER TESTS
# ============================================================================
# STATUS: Tests - Disjoint location resolution
# PURPOSE: Verify partition disjointness, bounds, rewrites and GLM mode
# CREATED: 19 OCT 2026
# ============================================================================
"""
Geoname Disjointer Tests

Covers:
1. Disjointness of the resulting partition
2. Idempotence of the reduction on its own output
3. Partition size bounds (too few / too many)
4. Rewrite map always ends at a partition member
5. Record exclusion (missing location, incomplete hierarchy, too coarse)
6. Default-GLM canonicalization onto US states

Run with:
    pytest tests/test_disjointer.py -v
"""

from typing import Dict, List, Optional, Set

import pytest
from unittest.mock import MagicMock

from core.contracts import DisjoinerLevel
from core.exceptions import CanonicalizationError, DisjointerError
from core.models import GeoLocation, JobRecord
from geo.disjointer import (
    INCOMPLETE_HIERARCHY,
    MISSING_LOCATION,
    Candidate,
    GeonameDisjointer,
)
from geo.states import US_STATES
from services.ancestors import InMemoryAncestorResolver


# ============================================================================
# HELPERS
# ============================================================================

EARTH = 6295630
NORTH_AMERICA = 6255149
USA = 6252001
EUROPE = 6255148

US_ANCESTORS = {EARTH, NORTH_AMERICA, USA}

STATES = {
    "Maryland": US_STATES["maryland"],
    "California": US_STATES["california"],
    "Nevada": US_STATES["nevada"],
    "Utah": US_STATES["utah"],
    "Minnesota": US_STATES["minnesota"],
    "New York": US_STATES["new york"],
    "Arkansas": US_STATES["arkansas"],
}


def _loc(geoname_id: int, name: str, feature_type: Optional[str] = "ADM1") -> GeoLocation:
    return GeoLocation(geoname_id=geoname_id, name=name, feature_type=feature_type)


def _record(record_id: str, location: Optional[GeoLocation]) -> JobRecord:
    return JobRecord(
        record_id=record_id,
        sequence="ACGT",
        collection_date="2015.5",
        location=location,
    )


class _Fixture:
    """Records plus the ancestor table that goes with them."""

    def __init__(self):
        self.records: List[JobRecord] = []
        self.ancestors: Dict[str, Set[int]] = {}
        self.locations: List[GeoLocation] = []

    def add(self, location: Optional[GeoLocation], ancestors: Optional[Set[int]] = None) -> str:
        record_id = f"R{len(self.records) + 1:04d}"
        self.records.append(_record(record_id, location))
        if ancestors is not None:
            self.ancestors[record_id] = set(ancestors)
        return record_id

    def state(self, name: str) -> str:
        return self.add(_loc(STATES[name], name, "ADM1"), US_ANCESTORS)

    def resolver(self) -> InMemoryAncestorResolver:
        return InMemoryAncestorResolver(self.ancestors, self.locations)

    def disjointer(self, **kwargs) -> GeonameDisjointer:
        return GeonameDisjointer(self.resolver(), **kwargs)


def _new_york_fixture() -> _Fixture:
    """Cities collapse into their states when the level is ADM1."""
    fx = _Fixture()
    ny, ca = STATES["New York"], STATES["California"]
    fx.add(_loc(5110302, "Brooklyn", "PPL"), US_ANCESTORS | {ny})
    fx.state("New York")
    fx.add(_loc(5133273, "Queens", "PPL"), US_ANCESTORS | {ny})
    fx.add(_loc(5368361, "Los Angeles", "PPL"), US_ANCESTORS | {ca})
    fx.state("California")
    return fx


def _encloses(outer: GeoLocation, inner: GeoLocation, ancestors: Dict[int, Set[int]]) -> bool:
    return outer.geoname_id == inner.geoname_id or outer.geoname_id in ancestors[inner.geoname_id]


# ============================================================================
# SCENARIOS
# ============================================================================

class TestScenarios:

    def test_states_with_country_record_and_duplicate(self):
        """Seven state records plus one country record -> six locations."""
        fx = _Fixture()
        for name in ["Maryland", "California", "Nevada", "Utah", "Minnesota", "New York", "New York"]:
            fx.state(name)
        country_record = fx.add(_loc(USA, "United States", "PCLI"), {EARTH, NORTH_AMERICA})

        result = fx.disjointer().disjoin(fx.records)

        assert result.distinct_locations == 6
        assert [loc.name for loc in result.partition] == [
            "Maryland", "California", "Nevada", "Utah", "Minnesota", "New York",
        ]
        assert country_record not in result.record_ids
        assert len(result.records) == 7
        assert result.excluded[0].record_id == country_record
        assert result.excluded[0].reason == (
            "Insufficient location information at Province/State level"
        )

    def test_single_location_is_too_few(self):
        fx = _Fixture()
        fx.state("New York")
        fx.state("New York")

        with pytest.raises(DisjointerError) as exc_info:
            fx.disjointer().disjoin(fx.records)

        assert "Too few distinct locations" in exc_info.value.user_message
        assert exc_info.value.user_message.endswith(": 1\nLocation: New York")
        assert exc_info.value.message == "Too few distinct locations: 1"

    def test_more_than_max_states_is_too_many(self):
        fx = _Fixture()
        names = []
        for index in range(36):
            name = f"Country {index}"
            names.append(name)
            fx.add(_loc(100_000 + index, name, "PCLI"), {EARTH, EUROPE})

        with pytest.raises(DisjointerError) as exc_info:
            fx.disjointer(max_states=25).disjoin(fx.records)

        message = exc_info.value.user_message
        assert message.startswith("Too many distinct locations (limit is 25): 36")
        for name in names:
            assert f"\t{name}" in message

    def test_exactly_max_states_is_allowed(self):
        fx = _Fixture()
        for index in range(25):
            fx.add(_loc(100_000 + index, f"Country {index}", "PCLI"), {EARTH, EUROPE})

        result = fx.disjointer(max_states=25).disjoin(fx.records)

        assert result.distinct_locations == 25


# ============================================================================
# PARTITION PROPERTIES
# ============================================================================

class TestPartitionProperties:

    def test_partition_is_pairwise_disjoint(self):
        fx = _new_york_fixture()
        by_location = {
            record.location.geoname_id: fx.ancestors[record.record_id] for record in fx.records
        }

        result = fx.disjointer().disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        assert [loc.name for loc in result.partition] == ["New York", "California"]
        for a in result.partition:
            for b in result.partition:
                if a is not b:
                    assert not _encloses(a, b, by_location)

    def test_every_retained_record_points_at_a_member(self):
        fx = _new_york_fixture()

        result = fx.disjointer().disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        members = {loc.geoname_id: loc.name for loc in result.partition}
        assert len(result.records) == 5
        for record in result.records:
            assert members[record.location.geoname_id] == record.location.name
        assert [r.location.name for r in result.records] == [
            "New York", "New York", "New York", "California", "California",
        ]

    def test_input_records_are_not_mutated(self):
        fx = _new_york_fixture()

        fx.disjointer().disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        assert fx.records[0].location.name == "Brooklyn"

    def test_rewrite_map_is_acyclic_and_terminates_at_members(self):
        fx = _new_york_fixture()

        result = fx.disjointer().disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        members = {loc.geoname_id for loc in result.partition}
        assert result.rewrites == {
            5133273: STATES["New York"],
            5110302: STATES["New York"],
            5368361: STATES["California"],
        }
        for start in result.rewrites:
            current, seen = start, set()
            while current not in members:
                assert current not in seen
                seen.add(current)
                current = result.rewrites[current]

    def test_reduce_is_idempotent_on_its_output(self):
        fx = _new_york_fixture()
        disjointer = fx.disjointer()
        first = disjointer.disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        candidates = [
            Candidate(f"M{index}", location, frozenset(US_ANCESTORS))
            for index, location in enumerate(first.partition)
        ]
        partition, rewrites = disjointer.reduce(candidates)

        assert partition == first.partition
        assert rewrites == {}

    def test_greedy_order_is_first_seen(self):
        """A child accepted before its parent is removed by the pairwise pass."""
        fx = _Fixture()
        ny = STATES["New York"]
        fx.add(_loc(5110302, "Brooklyn", "ADM2"), US_ANCESTORS | {ny})
        fx.state("New York")
        fx.state("Utah")

        result = fx.disjointer().disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        assert [loc.name for loc in result.partition] == ["New York", "Utah"]

    def test_duplicate_ids_produce_no_self_rewrite(self):
        fx = _Fixture()
        fx.state("Utah")
        fx.state("Utah")
        fx.state("Nevada")

        result = fx.disjointer().disjoin(fx.records)

        assert result.rewrites == {}
        assert result.distinct_locations == 2


# ============================================================================
# EXCLUSION + GRANULARITY
# ============================================================================

class TestExclusion:

    def test_missing_and_unknown_locations_are_excluded(self):
        fx = _Fixture()
        no_location = fx.add(None)
        unknown = fx.add(_loc(1, "Unknown"), US_ANCESTORS)
        no_type = fx.add(_loc(2, "Somewhere", None), US_ANCESTORS)
        fx.state("Utah")
        fx.state("Nevada")

        result = fx.disjointer().disjoin(fx.records)

        reasons = {item.record_id: item.reason for item in result.excluded}
        assert reasons == {
            no_location: MISSING_LOCATION,
            unknown: MISSING_LOCATION,
            no_type: MISSING_LOCATION,
        }

    def test_missing_ancestors_are_excluded(self):
        fx = _Fixture()
        orphan = fx.add(_loc(STATES["Maryland"], "Maryland"))
        self_only = fx.add(_loc(STATES["Minnesota"], "Minnesota"), {STATES["Minnesota"]})
        fx.state("Utah")
        fx.state("Nevada")

        result = fx.disjointer().disjoin(fx.records)

        reasons = {item.record_id: item.reason for item in result.excluded}
        assert reasons == {orphan: INCOMPLETE_HIERARCHY, self_only: INCOMPLETE_HIERARCHY}
        assert result.distinct_locations == 2

    def test_resolver_failure_is_a_disjointer_error(self):
        fx = _Fixture()
        fx.state("Utah")
        resolver = MagicMock()
        resolver.find_ancestors.side_effect = RuntimeError("index offline")

        with pytest.raises(DisjointerError) as exc_info:
            GeonameDisjointer(resolver).disjoin(fx.records)

        assert "Error retrieving location ancestors" in exc_info.value.message
        assert exc_info.value.user_message == "Error Disjointing Locations"

    def test_most_frequent_type_wins_with_first_seen_tie_break(self):
        fx = _Fixture()
        fx.add(_loc(11, "County A", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.state("Utah")
        fx.add(_loc(12, "County B", "ADM2"), US_ANCESTORS | {STATES["Nevada"]})
        fx.state("Nevada")

        result = fx.disjointer().disjoin(fx.records)

        assert [loc.name for loc in result.partition] == ["County A", "County B"]
        assert {item.reason for item in result.excluded} == {
            "Insufficient location information at County/City level"
        }

    def test_explicit_level_overrides_frequency(self):
        fx = _Fixture()
        fx.add(_loc(11, "County A", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.add(_loc(12, "County B", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.state("Utah")
        fx.state("Nevada")

        result = fx.disjointer().disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        assert [loc.name for loc in result.partition] == ["Utah", "Nevada"]
        assert result.excluded == []

    def test_explicit_level_lifts_finer_records(self):
        fx = _Fixture()
        fx.locations = [
            _loc(STATES["Utah"], "Utah", "ADM1"),
            _loc(USA, "United States", "PCLI"),
            _loc(NORTH_AMERICA, "North America", "CONT"),
        ]
        fx.add(_loc(11, "County A", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.add(_loc(12, "County B", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.state("Nevada")

        result = fx.disjointer().disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        assert [loc.name for loc in result.partition] == ["Utah", "Nevada"]
        assert result.rewrites == {11: STATES["Utah"], 12: STATES["Utah"]}
        assert [r.location.name for r in result.records] == ["Utah", "Utah", "Nevada"]
        assert result.excluded == []

    def test_explicit_level_without_location_table_keeps_records(self):
        fx = _Fixture()
        fx.add(_loc(11, "County A", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.add(_loc(12, "County B", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.state("Nevada")

        result = fx.disjointer().disjoin(fx.records, disjoiner_level=DisjoinerLevel.ADM1)

        assert [loc.name for loc in result.partition] == ["County A", "County B", "Nevada"]

    def test_auto_level_does_not_lift(self):
        fx = _Fixture()
        fx.locations = [_loc(STATES["Utah"], "Utah", "ADM1")]
        fx.add(_loc(11, "County A", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.add(_loc(12, "County B", "ADM2"), US_ANCESTORS | {STATES["Utah"]})
        fx.state("Nevada")

        result = fx.disjointer().disjoin(fx.records)

        assert [loc.name for loc in result.partition] == ["County A", "County B"]

    def test_call_resolver_overrides_instance_resolver(self):
        fx = _Fixture()
        utah = fx.state("Utah")
        fx.state("Nevada")
        fx.state("Arkansas")
        override = InMemoryAncestorResolver({**fx.ancestors, utah: set()})
        disjointer = fx.disjointer()

        result = disjointer.disjoin(fx.records, resolver=override)

        assert result.distinct_locations == 2
        assert disjointer.disjoin(fx.records).distinct_locations == 3


# ============================================================================
# DEFAULT GLM
# ============================================================================

class TestDefaultGlm:

    def test_survivors_are_canonicalized_onto_states(self):
        fx = _Fixture()
        ny = STATES["New York"]
        fx.add(_loc(5128581, "New York City", "PPL"), US_ANCESTORS | {ny})
        fx.state("Arkansas")

        result = fx.disjointer().disjoin(fx.records, use_default_glm=True)

        assert [(loc.name, loc.geoname_id) for loc in result.partition] == [
            ("new york", ny), ("Arkansas", STATES["Arkansas"]),
        ]
        assert result.rewrites == {5128581: ny}
        assert result.records[0].location.name == "new york"

    def test_colliding_states_collapse(self):
        fx = _Fixture()
        fx.add(_loc(5128581, "New York City", "PPL"), US_ANCESTORS | {STATES["New York"]})
        fx.add(_loc(5128999, "New York Mills", "PPL"), US_ANCESTORS | {STATES["New York"]})
        fx.state("Arkansas")

        result = fx.disjointer().disjoin(fx.records, use_default_glm=True)

        assert result.distinct_locations == 2
        assert [r.location.geoname_id for r in result.records[:2]] == [STATES["New York"]] * 2

    def test_country_records_are_dropped(self):
        fx = _Fixture()
        fx.state("Utah")
        fx.state("Nevada")
        country = fx.add(_loc(USA, "United States", "PCLI"), {EARTH, NORTH_AMERICA})

        result = fx.disjointer().disjoin(fx.records, use_default_glm=True)

        assert country in {item.record_id for item in result.excluded}

    def test_unmatched_location_fails(self):
        fx = _Fixture()
        fx.add(_loc(6167865, "Toronto", "PPL"), {EARTH, NORTH_AMERICA, 6251999})
        fx.state("Utah")

        with pytest.raises(CanonicalizationError):
            fx.disjointer().disjoin(fx.records, use_default_glm=True)

# ============================================================================
# US STATE CANONICALIZATION
# ============================================================================
# STATUS: Geo - Static lookup table
# PURPOSE: Map location names onto the 50 US states + DC for GLM predictors
# CREATED: 19 OCT 2026
# EXPORTS: US_STATES, canonical_state
# ============================================================================
"""
US State Canonicalization

Default GLM predictors are aggregated per US state, so in GLM mode every
location must collapse onto one of these geoname ids.
"""

from typing import Dict, Optional, Tuple

from core.exceptions import CanonicalizationError


# lowercase name -> geoname id, insertion order preserved
US_STATES: Dict[str, int] = {
    "alabama": 4829764,
    "alaska": 5879092,
    "arizona": 5551752,
    "arkansas": 4099753,
    "california": 5332921,
    "colorado": 5417618,
    "connecticut": 4831725,
    "delaware": 4142224,
    "district of columbia": 4138106,
    "florida": 4155751,
    "georgia": 4197000,
    "hawaii": 5855797,
    "idaho": 5596512,
    "illinois": 4896861,
    "indiana": 4921868,
    "iowa": 4862182,
    "kansas": 4273857,
    "kentucky": 6254925,
    "louisiana": 4331987,
    "maine": 4971068,
    "maryland": 4361885,
    "massachusetts": 6254926,
    "michigan": 5001836,
    "minnesota": 5037779,
    "mississippi": 4436296,
    "missouri": 4398678,
    "montana": 5667009,
    "nebraska": 5073708,
    "nevada": 5509151,
    "new hampshire": 5090174,
    "new jersey": 5101760,
    "new mexico": 5481136,
    "new york": 5128638,
    "north carolina": 4482348,
    "north dakota": 5690763,
    "ohio": 5165418,
    "oklahoma": 4544379,
    "oregon": 5744337,
    "pennsylvania": 6254927,
    "rhode island": 5224323,
    "south carolina": 4597040,
    "south dakota": 5769223,
    "tennessee": 4662168,
    "texas": 4736286,
    "utah": 5549030,
    "vermont": 5242283,
    "virginia": 6254928,
    "washington": 5815135,
    "west virginia": 4826850,
    "wisconsin": 5279468,
    "wyoming": 5843591,
}


def match_state(name: str) -> Optional[Tuple[str, int]]:
    """
    Find the state a location name refers to.

    An exact (case-insensitive) key wins. Otherwise the longest state name
    contained in the location name wins, so "West Virginia" never resolves
    to "virginia" and "Arkansas" never to "kansas".
    """
    lowered = name.strip().lower()
    if lowered in US_STATES:
        return lowered, US_STATES[lowered]
    best: Optional[str] = None
    for state in US_STATES:
        if state in lowered and (best is None or len(state) > len(best)):
            best = state
    if best is None:
        return None
    return best, US_STATES[best]


def canonical_state(name: str) -> Tuple[str, int]:
    """Like match_state, but raise CanonicalizationError on no match."""
    match = match_state(name)
    if match is None:
        raise CanonicalizationError(name)
    return match


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["US_STATES", "match_state", "canonical_state"]

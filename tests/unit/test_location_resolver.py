from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from shipment_ingest.models.shipment import LocationQuery, ResolutionMethod
from shipment_ingest.services.geocoding import GeocodeResult
from shipment_ingest.services.known_locations import find_known_location, match_location
from shipment_ingest.services.location_resolver import (
    DIRECT_CONFIDENCE,
    LocationResolver,
    assemble_direct,
)


class StubGeocoder:
    def __init__(self, result: GeocodeResult | None) -> None:
        self.result = result
        self.queries: list[str] = []

    def geocode(self, address: str) -> GeocodeResult | None:
        self.queries.append(address)
        return self.result


def test_find_known_location_keywords():
    assert find_known_location("PTP").key == "PTP"
    assert find_known_location("  klia cargo village ").key == "KLIA-CARGO"
    assert find_known_location("") is None
    assert find_known_location("Somewhere Else 42") is None


def test_match_location_patterns_use_state_context():
    johor = match_location("PICKUP NIRO DEPOT", state_context="Johor")
    unknown_state = match_location("PICKUP NIRO DEPOT", state_context="Sabah")
    assert johor.city == "Johor Bahru"
    assert johor.confidence < 1.0
    assert unknown_state.key == "EST-NIRO"


def test_match_location_other_states_is_unresolvable():
    entry = match_location("RETAIL OUTSTATION - OTHER STATES")
    assert entry.resolvable is False


@pytest.mark.parametrize(
    "text,key",
    [("LOADUP JB", "LOADUP-JB"), ("loadup pn warehouse", "LOADUP-PN"), ("PRAI HUB", "LOADUP-PN")],
)
def test_loadup_hubs_resolve_to_keyword_entries(text, key):
    entry = match_location(text)
    assert entry.key == key
    assert entry.confidence == 1.0


def test_structured_fields_resolve_direct():
    query = LocationQuery(raw="123 Main St", street="123 Main St")
    resolution = LocationResolver().resolve(query)
    assert resolution.method is ResolutionMethod.DIRECT
    assert resolution.confidence == DIRECT_CONFIDENCE
    assert resolution.raw_input == "123 Main St"


def test_assemble_direct_extracts_postcode_and_trims_city():
    query = LocationQuery(street="12 Jalan Satu, 40000 Shah Alam", city="Shah Alam", state="Selangor")
    resolution = assemble_direct(query)
    assert resolution.postal_code == "40000"
    assert resolution.street == "12 Jalan Satu"
    assert resolution.country == "Malaysia"
    assert resolution.raw_input == "12 Jalan Satu, Shah Alam, Selangor, 40000, Malaysia"


def test_keyword_lookup():
    resolution = LocationResolver().resolve(LocationQuery(raw="PTP"))
    assert resolution.method is ResolutionMethod.KEYWORD_LOOKUP
    assert resolution.confidence > 0
    assert resolution.latitude == pytest.approx(1.3624)
    assert resolution.label == "Port of Tanjung Pelepas"


def test_unknown_text_resolves_to_none_without_raising():
    resolution = LocationResolver().resolve(LocationQuery(raw="Nowhere Land 999"))
    assert resolution.method is ResolutionMethod.NONE
    assert resolution.confidence == 0.0
    assert resolution.raw_input == "Nowhere Land 999"


def test_empty_query_is_unresolved():
    resolution = LocationResolver().resolve(LocationQuery())
    assert resolution.method is ResolutionMethod.NONE
    assert not resolution.has_input
    assert LocationResolver().resolve(None).raw_input is None


def test_geocoder_fallback():
    geocoder = StubGeocoder(GeocodeResult(3.1, 101.6, 0.85, "Jalan X, Petaling Jaya", city="Petaling Jaya", state="Selangor"))
    resolution = LocationResolver(geocoder).resolve(LocationQuery(raw="Lot 9 Jalan X"))
    assert resolution.method is ResolutionMethod.GEOCODE
    assert resolution.confidence == 0.85
    assert resolution.city == "Petaling Jaya"
    assert geocoder.queries == ["Lot 9 Jalan X"]


def test_geocoder_miss_and_exception_are_unresolved():
    assert LocationResolver(StubGeocoder(None)).resolve(LocationQuery(raw="Lot 9")).method is ResolutionMethod.NONE
    exploding = MagicMock()
    exploding.geocode.side_effect = RuntimeError("socket closed")
    assert LocationResolver(exploding).resolve(LocationQuery(raw="Lot 9")).method is ResolutionMethod.NONE


def test_keyword_lookup_preferred_over_geocoder():
    geocoder = StubGeocoder(GeocodeResult(0.0, 0.0, 1.0))
    resolution = LocationResolver(geocoder).resolve(LocationQuery(raw="LOADUP JB"))
    assert resolution.method is ResolutionMethod.KEYWORD_LOOKUP
    assert geocoder.queries == []


def test_unresolvable_entry_is_none():
    resolution = LocationResolver().resolve(LocationQuery(raw="RETAIL OUTSTATION - OTHER STATES"))
    assert resolution.method is ResolutionMethod.NONE

from __future__ import annotations

import pytest

from shipment_ingest.models.config_models import ConfidenceConfig
from shipment_ingest.models.raw_row import RawRow
from shipment_ingest.models.shipment import (
    AddressResolution,
    LocationQuery,
    ResolutionMethod,
    ShipmentBundle,
    SourceRef,
)
from shipment_ingest.services.bundle_assembler import BundleAssembler, compute_confidence
from shipment_ingest.services.field_mapper import FieldMapper
from shipment_ingest.services.location_resolver import LocationResolver
from shipment_ingest.services.reconstructor import ShipmentReconstructor

CFG = ConfidenceConfig()


def _bundle(**kwargs) -> ShipmentBundle:
    return ShipmentBundle(load_number="L-1", source=SourceRef("S", 1), **kwargs)


def test_compute_confidence_perfect():
    assert compute_confidence(0.0, None, None, 0, CFG) == 1.0


def test_compute_confidence_penalties_are_capped():
    bad = AddressResolution.unresolved("somewhere")
    score = compute_confidence(1.0, bad, bad, 10, CFG)
    # 0.3 mapping + 0.4 location + 0.3 errors
    assert score == pytest.approx(0.0)


def test_compute_confidence_side_without_input_counts_as_confident():
    empty = AddressResolution.unresolved(None)
    assert compute_confidence(0.0, empty, empty, 0, CFG) == 1.0


def test_compute_confidence_direct_destination():
    direct = AddressResolution(raw_input="1 Jalan", method=ResolutionMethod.DIRECT, confidence=0.9)
    assert compute_confidence(0.0, None, direct, 1, CFG) == pytest.approx(1 - 0.02 - 0.1)


def test_assemble_resolves_both_sides_and_scores():
    mapping = FieldMapper().map_headers(["Load No", "Address"])
    bundle = _bundle(
        destination_query=LocationQuery(raw="123 Main St", street="123 Main St"),
        origin_query=LocationQuery(raw="PTP"),
    )

    assembled = BundleAssembler(LocationResolver(), CFG).assemble(bundle, mapping)

    assert assembled.destination.method is ResolutionMethod.DIRECT
    assert assembled.destination.raw_input == "123 Main St"
    assert assembled.origin.method is ResolutionMethod.KEYWORD_LOOKUP
    assert assembled.confidence == pytest.approx(0.98)
    assert assembled.needs_review is False


def test_assemble_flags_unresolved_destination():
    mapping = FieldMapper().map_headers(["Load No", "Address"])
    bundle = _bundle(destination_query=LocationQuery(raw="Nowhere Land 999"))
    assembled = BundleAssembler(LocationResolver()).assemble(bundle, mapping)
    assert assembled.destination.method is ResolutionMethod.NONE
    assert assembled.needs_review is True


def test_assemble_flags_unmapped_headers():
    mapping = FieldMapper().map_headers(["Load No", "Gate Pass"])
    bundle = _bundle(flagged_headers=("Gate Pass",))
    assembled = BundleAssembler(LocationResolver()).assemble(bundle, mapping)
    # one of two headers below threshold: 0.3 * 0.5
    assert assembled.confidence == pytest.approx(0.85)
    assert assembled.needs_review is True


def test_assemble_low_confidence_needs_review():
    mapping = FieldMapper().map_headers(["Load No"])
    bundle = _bundle(processing_errors=("a", "b", "c"))
    assembled = BundleAssembler(LocationResolver()).assemble(bundle, mapping)
    assert assembled.confidence == pytest.approx(0.7)
    assert assembled.needs_review is True


def test_origin_uses_destination_state_as_context():
    mapping = FieldMapper().map_headers(["Load No"])
    bundle = _bundle(
        destination_query=LocationQuery(street="5 Jalan Tebrau", state="Johor"),
        origin_query=LocationQuery(raw="PICKUP NIRO DEPOT"),
    )
    assembled = BundleAssembler(LocationResolver()).assemble(bundle, mapping)
    assert assembled.origin.city == "Johor Bahru"


def test_load_and_address_headers_end_to_end():
    mapping = FieldMapper().map_headers(["Load No", "Ship To Address"])
    rows = [RawRow(position=1, cells=("L-001", "123 Main St"), sheet_row=2)]
    state = ShipmentReconstructor(mapping, "Sheet1", required_fields=("ship_to_address",)).run(rows)

    assert len(state.finished) == 1
    assembled = BundleAssembler(LocationResolver()).assemble(state.finished[0], mapping)
    assert assembled.load_number == "L-001"
    assert assembled.destination.raw_input == "123 Main St"
    assert assembled.destination.method is ResolutionMethod.DIRECT


def test_load_and_address_headers_rejected_under_default_required_fields():
    mapping = FieldMapper().map_headers(["Load No", "Ship To Address"])
    rows = [RawRow(position=1, cells=("L-001", "123 Main St"), sheet_row=2)]
    state = ShipmentReconstructor(mapping, "Sheet1").run(rows)

    assert state.finished == ()
    assert state.rejected[0].missing == ("promised_ship_date",)

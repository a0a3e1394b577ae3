from __future__ import annotations

from collections.abc import Sequence

from shipment_ingest.excel.field_tables import (
    CANONICAL_FIELDS,
    alias_table,
    candidate_fields,
    header_vocabulary,
    normalize_header,
)
from shipment_ingest.models.document import DocumentType
from shipment_ingest.models.header_mapping import MISCELLANEOUS, MappingMethod
from shipment_ingest.services.field_inference import InferenceResult
from shipment_ingest.services.field_mapper import FieldMapper
from shipment_ingest.services.mapping_cache import MappingCache


class StubInference:
    def __init__(self, answers: dict[str, InferenceResult | None]) -> None:
        self.answers = answers
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    def infer(self, header: str, candidates: Sequence[str]) -> InferenceResult | None:
        self.calls.append((header, tuple(candidates)))
        return self.answers.get(header)


def test_alias_tables_per_document_type():
    assert "trip rate" not in alias_table(DocumentType.ETD_REPORT)
    assert alias_table(DocumentType.OUTSTATION_RATES)["trip rate"] == "trip_rate"
    assert alias_table(DocumentType.UNKNOWN)["load no"] == "load_number"
    assert "load no" in header_vocabulary(DocumentType.ETD_REPORT)


def test_normalize_header():
    assert normalize_header("  Ship  To\nAddress ") == "ship to address"
    assert normalize_header(None) == ""


def test_candidate_fields_narrowed_by_hint():
    assert candidate_fields("Consignee") == ("ship_to_customer", "ship_to_address")
    assert candidate_fields("Lorry No.") == ("truck_details",)
    assert candidate_fields("Zzz") == CANONICAL_FIELDS


def test_direct_alias_is_case_insensitive():
    mapping = FieldMapper().map_header("  LOAD NO ", 0)
    assert mapping.field == "load_number"
    assert mapping.method is MappingMethod.DIRECT
    assert mapping.confidence == 1.0
    assert mapping.needs_review is False


def test_unknown_header_without_inference_is_miscellaneous():
    mapping = FieldMapper(inference_enabled=True).map_header("Gate Pass", 3)
    assert mapping.field == MISCELLANEOUS
    assert mapping.method is MappingMethod.UNMAPPED
    assert mapping.confidence == 0.0
    assert mapping.needs_review is True


def test_blank_header_gets_column_name():
    mapping = FieldMapper().map_header(None, 4)
    assert mapping.header == "column_5"
    assert mapping.blank is True
    assert mapping.is_miscellaneous


def test_inference_accepted_at_threshold_and_cached():
    stub = StubInference({"Consignee Name": InferenceResult("ship_to_customer", 0.7)})
    cache = MappingCache()
    mapper = FieldMapper(inference=stub, cache=cache, threshold=0.7)

    mapping = mapper.map_header("Consignee Name", 2)

    assert mapping.field == "ship_to_customer"
    assert mapping.method is MappingMethod.INFERRED
    assert mapping.confidence == 0.7
    assert cache.get("consignee name").field == "ship_to_customer"
    assert stub.calls[0][1] == ("ship_to_customer", "ship_to_address")


def test_inference_below_threshold_rejected_and_not_cached():
    stub = StubInference({"Consignee": InferenceResult("ship_to_customer", 0.69)})
    cache = MappingCache()
    mapping = FieldMapper(inference=stub, cache=cache).map_header("Consignee", 0)
    assert mapping.field == MISCELLANEOUS
    assert cache.get("consignee") is None


def test_inference_unknown_field_rejected():
    stub = StubInference({"Gate Pass": InferenceResult("gate_pass", 0.95)})
    assert FieldMapper(inference=stub).map_header("Gate Pass", 0).field == MISCELLANEOUS


def test_cache_hit_skips_inference():
    cache = MappingCache()
    cache.put("Consignee", "ship_to_customer", 0.9)
    stub = StubInference({})
    mapping = FieldMapper(inference=stub, cache=cache).map_header("consignee", 0)
    assert mapping.field == "ship_to_customer"
    assert stub.calls == []


def test_inference_disabled_flag():
    stub = StubInference({"Consignee": InferenceResult("ship_to_customer", 0.99)})
    mapping = FieldMapper(inference=stub, inference_enabled=False).map_header("Consignee", 0)
    assert mapping.field == MISCELLANEOUS
    assert stub.calls == []


def test_unknown_header_with_cache_but_no_inference_client():
    cache = MappingCache()
    cache.put("Consignee", "ship_to_customer", 0.9)
    mapper = FieldMapper(cache=cache)
    assert mapper.inference_enabled is False
    assert mapper._infer("Gate Pass", ["remarks"]) is None
    assert mapper.map_header("Gate Pass", 0).field == MISCELLANEOUS


def test_map_headers_is_deterministic():
    headers = ["Load No", "Gate Pass", None, "Address", "Qty"]
    first = FieldMapper().map_headers(headers)
    second = FieldMapper().map_headers(headers)
    assert first == second
    assert [m.field for m in first.columns] == [
        "load_number",
        MISCELLANEOUS,
        MISCELLANEOUS,
        "ship_to_address",
        "quantity",
    ]


def test_map_headers_calls_inference_once_per_header():
    stub = StubInference({})
    FieldMapper(inference=stub).map_headers(["Load No", "Gate Pass", "Seal"])
    assert [c[0] for c in stub.calls] == ["Gate Pass", "Seal"]


def test_outstation_aliases_only_for_outstation():
    etd = FieldMapper(DocumentType.ETD_REPORT).map_header("Trip Rate", 0)
    outstation = FieldMapper(DocumentType.OUTSTATION_RATES).map_header("Trip Rate", 0)
    assert etd.field == MISCELLANEOUS
    assert outstation.field == "trip_rate"

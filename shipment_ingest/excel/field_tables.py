from __future__ import annotations

from ..models.document import DocumentType

"""Header alias tables.

Keys are lower-cased, trimmed header texts; values are canonical field names.
Lookups are exact after normalization (see ``normalize_header``). The ETD report
table is the base; the outstation rates table adds the charge, truck and pickup
warehouse columns that only those sheets carry.
"""

__all__ = [
    "CANONICAL_FIELDS",
    "ITEM_FIELDS",
    "alias_table",
    "candidate_fields",
    "header_vocabulary",
    "normalize_header",
]

# Fields describing one line item; any of the first four makes a row an item
ITEM_FIELDS = (
    "item_number",
    "description",
    "quantity",
    "lot_serial_number",
    "secondary_item_number",
    "uom",
    "weight",
    "bin",
)

_BASE_ALIASES: dict[str, str] = {
    "load no": "load_number",
    "load number": "load_number",
    "promised ship date": "promised_ship_date",
    "promise date": "promised_ship_date",
    "ship date": "promised_ship_date",
    "request date": "request_date",
    "requested date": "request_date",
    "order number": "order_number",
    "order no": "order_number",
    "ship to area": "ship_to_area",
    "area": "ship_to_area",
    "ship to customer name": "ship_to_customer",
    "ship to customer": "ship_to_customer",
    "customer name": "ship_to_customer",
    "customer": "ship_to_customer",
    "address line 1 and 2": "ship_to_address",
    "address": "ship_to_address",
    "ship to address": "ship_to_address",
    "city": "ship_to_city",
    "ship to city": "ship_to_city",
    "postcode": "ship_to_postcode",
    "postal code": "ship_to_postcode",
    "zip": "ship_to_postcode",
    "country": "ship_to_country",
    "state/ province": "ship_to_state",
    "state/province": "ship_to_state",
    "state": "ship_to_state",
    "province": "ship_to_state",
    "contact no": "contact_number",
    "contact number": "contact_number",
    "phone": "contact_number",
    "customer po number": "po_number",
    "po number": "po_number",
    "po no": "po_number",
    "remark": "remarks",
    "remarks": "remarks",
    "notes": "remarks",
    "note": "remarks",
    "comment": "remarks",
    "comments": "remarks",
    "status": "status",
    "shipment status": "status",
    "2nd item number": "secondary_item_number",
    "item number": "item_number",
    "item no": "item_number",
    "item": "item_number",
    "description 1": "description",
    "description": "description",
    "item description": "description",
    "lot serial number": "lot_serial_number",
    "lot number": "lot_serial_number",
    "serial number": "lot_serial_number",
    "serial no": "lot_serial_number",
    "lot no": "lot_serial_number",
    "quantity ordered": "quantity",
    "quantity": "quantity",
    "qty": "quantity",
    "uom": "uom",
    "unit of measure": "uom",
    "unit": "uom",
    "weight (kg)": "weight",
    "weight": "weight",
    "bin": "bin",
    "bin location": "bin",
}

_OUTSTATION_ALIASES: dict[str, str] = {
    "trip rate": "trip_rate",
    "rate": "trip_rate",
    "drop charge": "drop_charge",
    "drop": "drop_charge",
    "manpower": "manpower_charge",
    "manpower charge": "manpower_charge",
    "total charge": "total_charge",
    "total": "total_charge",
    "truck details": "truck_details",
    "truck / driver": "truck_details",
    "driver details": "truck_details",
    "pickup warehouse": "pickup_warehouse",
    "pick up warehouse": "pickup_warehouse",
    "warehouse": "pickup_warehouse",
    "origin": "pickup_warehouse",
}

_TABLES: dict[DocumentType, dict[str, str]] = {
    DocumentType.UNKNOWN: {**_BASE_ALIASES, **_OUTSTATION_ALIASES},
    DocumentType.ETD_REPORT: dict(_BASE_ALIASES),
    DocumentType.OUTSTATION_RATES: {**_BASE_ALIASES, **_OUTSTATION_ALIASES},
}

CANONICAL_FIELDS: tuple[str, ...] = tuple(
    sorted(set(_BASE_ALIASES.values()) | set(_OUTSTATION_ALIASES.values()))
)


# Hint words narrowing the candidate list sent to field inference
_CANDIDATE_HINTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("load", ("load_number",)),
    ("order", ("order_number", "po_number")),
    ("etd", ("promised_ship_date",)),
    ("date", ("promised_ship_date", "request_date")),
    ("consignee", ("ship_to_customer", "ship_to_address")),
    ("customer", ("ship_to_customer",)),
    ("deliver", ("ship_to_address", "promised_ship_date")),
    ("address", ("ship_to_address",)),
    ("tel", ("contact_number",)),
    ("mobile", ("contact_number",)),
    ("contact", ("contact_number",)),
    ("po", ("po_number",)),
    ("purchase", ("po_number",)),
    ("instruction", ("remarks",)),
    ("memo", ("remarks",)),
    ("sku", ("item_number",)),
    ("part", ("item_number",)),
    ("desc", ("description",)),
    ("batch", ("lot_serial_number",)),
    ("pcs", ("quantity",)),
    ("kg", ("weight",)),
    ("gross", ("weight",)),
    ("driver", ("truck_details",)),
    ("lorry", ("truck_details",)),
    ("vehicle", ("truck_details",)),
    ("pickup", ("pickup_warehouse",)),
    ("charge", ("total_charge", "drop_charge", "manpower_charge")),
    ("cost", ("total_charge", "trip_rate")),
)


def candidate_fields(header: str) -> tuple[str, ...]:
    """Canonical fields worth offering for ``header``; all fields when no hint matches."""
    tokens = set(normalize_header(header).replace("#", " ").replace("/", " ").split())
    found: list[str] = []
    for hint, fields in _CANDIDATE_HINTS:
        hit = hint in tokens if len(hint) <= 3 else any(t.startswith(hint) for t in tokens)
        if hit:
            found.extend(f for f in fields if f not in found)
    return tuple(found) if found else CANONICAL_FIELDS


def normalize_header(text: object) -> str:
    """Lower-case, trim and collapse inner whitespace."""
    if text is None:
        return ""
    return " ".join(str(text).split()).lower()


def alias_table(document_type: DocumentType = DocumentType.UNKNOWN) -> dict[str, str]:
    return _TABLES.get(document_type, _TABLES[DocumentType.UNKNOWN])


def header_vocabulary(document_type: DocumentType = DocumentType.UNKNOWN) -> frozenset[str]:
    """Vocabulary used to score candidate header rows."""
    return frozenset(alias_table(document_type))

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

"""Shipment bundle models.

A ShipmentBundle is opened by a new-shipment row, extended with line items by the
rows beneath it and finalized when the next shipment row (or the end of the sheet)
is reached. Every operation returns a new value; bundles are never mutated.
"""

__all__ = [
    "AddressResolution",
    "Charges",
    "LineItem",
    "LocationQuery",
    "ResolutionMethod",
    "ShipmentBundle",
    "SourceRef",
    "TruckDetails",
]


class ResolutionMethod(str, Enum):
    DIRECT = "direct"
    KEYWORD_LOOKUP = "keyword-lookup"
    GEOCODE = "geocode"
    NONE = "none"


@dataclass(frozen=True)
class LocationQuery:
    """Free-text location plus whatever structured fields the row carried."""
    raw: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None

    @property
    def has_structured_fields(self) -> bool:
        return any((self.street, self.city, self.state, self.postal_code, self.country))

    @property
    def is_empty(self) -> bool:
        return not (self.raw or self.has_structured_fields)

    def best_text(self) -> str:
        """Raw input, or a concatenation of the structured parts."""
        if self.raw:
            return self.raw
        parts = [self.street, self.city, self.postal_code, self.state, self.country]
        return ", ".join(p for p in parts if p)


@dataclass(frozen=True)
class AddressResolution:
    raw_input: str | None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    method: ResolutionMethod = ResolutionMethod.NONE
    confidence: float = 0.0
    label: str | None = None  # display name of a known location

    @staticmethod
    def unresolved(raw_input: str | None) -> AddressResolution:
        return AddressResolution(raw_input=raw_input, method=ResolutionMethod.NONE, confidence=0.0)

    @property
    def has_input(self) -> bool:
        return bool(self.raw_input and self.raw_input.strip())

    @property
    def is_resolved(self) -> bool:
        return self.method != ResolutionMethod.NONE

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class LineItem:
    item_number: str | None = None
    secondary_item_number: str | None = None
    description: str | None = None
    lot_serial_number: str | None = None
    quantity: float | None = None
    uom: str | None = None
    weight: float | None = None
    bin: str | None = None


@dataclass(frozen=True)
class TruckDetails:
    """Driver and vehicle identifiers exactly as parsed from the sheet."""
    driver_name: str | None = None
    driver_phone: str | None = None
    driver_ic: str | None = None
    truck_plate: str | None = None


@dataclass(frozen=True)
class Charges:
    trip_rate: float | None = None
    drop_charge: float | None = None
    manpower_charge: float | None = None
    total_charge: float | None = None
    raw_trip_rate: str | None = None
    raw_drop_charge: str | None = None
    raw_manpower_charge: str | None = None
    raw_total_charge: str | None = None


@dataclass(frozen=True)
class SourceRef:
    sheet: str
    position: int  # 1-based within the filtered rows
    sheet_row: int = -1

    def describe(self) -> str:
        return f"{self.sheet}#{self.position}"


@dataclass(frozen=True)
class ShipmentBundle:
    load_number: str
    source: SourceRef
    order_number: str | None = None
    po_number: str | None = None
    promised_ship_date: datetime | None = None
    request_date: datetime | None = None
    customer: str | None = None
    remarks: str | None = None
    status: str = "AWAITING_STATUS"
    recipient_name: str | None = None
    recipient_phone: str | None = None
    line_items: tuple[LineItem, ...] = ()
    total_weight: float = 0.0
    origin_query: LocationQuery = field(default_factory=LocationQuery)
    destination_query: LocationQuery = field(default_factory=LocationQuery)
    origin: AddressResolution | None = None
    destination: AddressResolution | None = None
    truck: TruckDetails = field(default_factory=TruckDetails)
    charges: Charges = field(default_factory=Charges)
    miscellaneous: dict[str, str] = field(default_factory=dict)
    confidence: float = 1.0
    needs_review: bool = False
    processing_errors: tuple[str, ...] = ()
    flagged_headers: tuple[str, ...] = ()

    @property
    def identifier(self) -> str:
        return self.load_number or self.source.describe()

    def with_item(self, item: LineItem) -> ShipmentBundle:
        return replace(self, line_items=self.line_items + (item,))

    def with_errors(self, *errors: str) -> ShipmentBundle:
        if not errors:
            return self
        return replace(self, processing_errors=self.processing_errors + tuple(errors))

    def with_flagged(self, headers: tuple[str, ...]) -> ShipmentBundle:
        new = tuple(h for h in headers if h not in self.flagged_headers)
        if not new:
            return self
        return replace(self, flagged_headers=self.flagged_headers + new)

    def with_miscellaneous(self, extra: dict[str, str]) -> ShipmentBundle:
        """Merge overflow fields; values already on the bundle are kept."""
        if not extra:
            return self
        merged = dict(extra)
        merged.update(self.miscellaneous)
        return replace(self, miscellaneous=merged)

    def fill_missing(self, **values: Any) -> ShipmentBundle:
        """Set attributes that are still empty; populated ones are left alone."""
        changes = {k: v for k, v in values.items() if v and not getattr(self, k)}
        if not changes:
            return self
        return replace(self, **changes)

    def finalize(self) -> ShipmentBundle:
        total = sum(item.weight or 0.0 for item in self.line_items)
        return replace(self, total_weight=round(total, 3))

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from functools import reduce
from typing import Any

from ..excel.field_tables import ITEM_FIELDS
from ..models.config_models import DEFAULT_REQUIRED_FIELDS
from ..models.header_mapping import ProjectedRow, SheetMapping
from ..models.raw_row import RawRow
from ..models.shipment import Charges, LineItem, LocationQuery, ShipmentBundle, SourceRef
from .values import (
    clean_text,
    normalize_status,
    parse_contact,
    parse_date,
    parse_number,
    parse_truck_details,
)

"""Row classifier / shipment reconstructor.

Rows are folded into bundles with ``functools.reduce``; the accumulator is an
immutable ReconstructionState so each transition can be tested on its own.

Decision rule: a row carrying a load number or order number starts a new
shipment, any other row contributes line items to the open one. Rows beneath no
open shipment are orphans.
"""

__all__ = [
    "ORPHAN_DISCARD",
    "ORPHAN_FLAG_REVIEW",
    "ReconstructionState",
    "RowRejection",
    "ShipmentReconstructor",
    "build_line_item",
    "is_new_shipment_row",
]

logger = logging.getLogger(__name__)

ORPHAN_DISCARD = "discard"
ORPHAN_FLAG_REVIEW = "flag_review"

# An item needs at least one of these; uom / weight alone are not an item
_ITEM_PRESENCE = ITEM_FIELDS[:4]


@dataclass(frozen=True)
class RowRejection:
    position: int
    sheet_row: int
    identifier: str | None  # load / order number that was present
    missing: tuple[str, ...]

    def describe(self) -> str:
        return f"row {self.position} ({self.identifier}) missing {', '.join(self.missing)}"


@dataclass(frozen=True)
class ReconstructionState:
    open_bundle: ShipmentBundle | None = None
    finished: tuple[ShipmentBundle, ...] = ()
    rejected: tuple[RowRejection, ...] = ()
    orphans: tuple[int, ...] = ()  # positions of orphan item rows
    orphan_review: bool = False
    shipment_rows: int = 0  # rows classified as new-shipment

    def close_open(self) -> ReconstructionState:
        if self.open_bundle is None:
            return self
        return replace(self, open_bundle=None, finished=self.finished + (self.open_bundle.finalize(),))


def is_new_shipment_row(row: ProjectedRow) -> bool:
    return bool(clean_text(row.get("load_number")) or clean_text(row.get("order_number")))


def _parsed(parser: Callable[[Any], Any], row: ProjectedRow, name: str, errors: list[str]) -> Any:
    try:
        return parser(row.get(name))
    except ValueError as e:
        errors.append(f"row {row.position} {name}: {e}")
        return None


def build_line_item(row: ProjectedRow, errors: list[str]) -> LineItem | None:
    """LineItem from a row, or None when no item-identifying field is present."""
    if not any(clean_text(row.get(name)) for name in _ITEM_PRESENCE):
        return None
    return LineItem(
        item_number=clean_text(row.get("item_number")),
        secondary_item_number=clean_text(row.get("secondary_item_number")),
        description=clean_text(row.get("description")),
        lot_serial_number=clean_text(row.get("lot_serial_number")),
        quantity=_parsed(parse_number, row, "quantity", errors),
        uom=clean_text(row.get("uom")),
        weight=_parsed(parse_number, row, "weight", errors),
        bin=clean_text(row.get("bin")),
    )


class ShipmentReconstructor:
    """Folds the data rows of one sheet into ShipmentBundles."""

    def __init__(
        self,
        mapping: SheetMapping,
        sheet_name: str,
        required_fields: Iterable[str] = DEFAULT_REQUIRED_FIELDS,
        orphan_policy: str = ORPHAN_DISCARD,
        sheet_origin: str | None = None,
    ) -> None:
        self.mapping = mapping
        self.sheet_name = sheet_name
        # load number is mandatory regardless of configuration
        required = ["load_number"] + [f for f in required_fields if f != "load_number"]
        self.required_fields = tuple(required)
        self.orphan_policy = orphan_policy
        self.sheet_origin = sheet_origin

    def _missing_required(self, row: ProjectedRow) -> tuple[str, ...]:
        return tuple(f for f in self.required_fields if not clean_text(row.get(f)))

    def _open_bundle(self, row: ProjectedRow) -> ShipmentBundle:
        errors: list[str] = []
        names, phones = parse_contact(row.get("contact_number"))
        charges = Charges(
            trip_rate=_parsed(parse_number, row, "trip_rate", errors),
            drop_charge=_parsed(parse_number, row, "drop_charge", errors),
            manpower_charge=_parsed(parse_number, row, "manpower_charge", errors),
            total_charge=_parsed(parse_number, row, "total_charge", errors),
            raw_trip_rate=clean_text(row.get("trip_rate")),
            raw_drop_charge=clean_text(row.get("drop_charge")),
            raw_manpower_charge=clean_text(row.get("manpower_charge")),
            raw_total_charge=clean_text(row.get("total_charge")),
        )
        address = clean_text(row.get("ship_to_address"))
        destination = LocationQuery(
            raw=address,
            street=address,
            city=clean_text(row.get("ship_to_city")),
            state=clean_text(row.get("ship_to_state")),
            postal_code=clean_text(row.get("ship_to_postcode")),
            country=clean_text(row.get("ship_to_country")),
        )
        origin = LocationQuery(raw=clean_text(row.get("pickup_warehouse")) or self.sheet_origin)

        bundle = ShipmentBundle(
            load_number=clean_text(row.get("load_number")) or "",
            source=SourceRef(self.sheet_name, row.position, row.sheet_row),
            order_number=clean_text(row.get("order_number")),
            po_number=clean_text(row.get("po_number")),
            promised_ship_date=_parsed(parse_date, row, "promised_ship_date", errors),
            request_date=_parsed(parse_date, row, "request_date", errors),
            customer=clean_text(row.get("ship_to_customer")) or clean_text(row.get("ship_to_area")),
            remarks=clean_text(row.get("remarks")),
            status=normalize_status(row.get("status")),
            recipient_name=names,
            recipient_phone=phones,
            origin_query=origin,
            destination_query=destination,
            truck=parse_truck_details(row.get("truck_details")),
            charges=charges,
            miscellaneous=dict(row.miscellaneous),
            flagged_headers=row.flagged_headers,
        )
        item = build_line_item(row, errors)
        if item is not None:
            bundle = bundle.with_item(item)
        return bundle.with_errors(*errors)

    def _extend(self, bundle: ShipmentBundle, row: ProjectedRow) -> ShipmentBundle:
        errors: list[str] = []
        item = build_line_item(row, errors)
        if item is not None:
            bundle = bundle.with_item(item)
        names, phones = parse_contact(row.get("contact_number"))
        bundle = bundle.fill_missing(
            remarks=clean_text(row.get("remarks")),
            po_number=clean_text(row.get("po_number")),
            customer=clean_text(row.get("ship_to_customer")),
            recipient_name=names,
            recipient_phone=phones,
        )
        return (
            bundle.with_miscellaneous(row.miscellaneous)
            .with_flagged(row.flagged_headers)
            .with_errors(*errors)
        )

    def step(self, state: ReconstructionState, raw: RawRow) -> ReconstructionState:
        row = self.mapping.project(raw)

        if is_new_shipment_row(row):
            state = replace(state.close_open(), shipment_rows=state.shipment_rows + 1)
            missing = self._missing_required(row)
            if missing:
                rejection = RowRejection(
                    position=row.position,
                    sheet_row=row.sheet_row,
                    identifier=clean_text(row.get("load_number")) or clean_text(row.get("order_number")),
                    missing=missing,
                )
                logger.warning(f"{self.sheet_name}: rejected {rejection.describe()}")
                return replace(state, rejected=state.rejected + (rejection,))
            return replace(state, open_bundle=self._open_bundle(row))

        if state.open_bundle is None:
            if self.orphan_policy == ORPHAN_FLAG_REVIEW:
                logger.warning(f"{self.sheet_name}: orphan item row {row.position} flagged for review")
                return replace(state, orphans=state.orphans + (row.position,), orphan_review=True)
            logger.warning(f"{self.sheet_name}: orphan item row {row.position} discarded")
            return replace(state, orphans=state.orphans + (row.position,))

        return replace(state, open_bundle=self._extend(state.open_bundle, row))

    def run(self, rows: Iterable[RawRow]) -> ReconstructionState:
        """Fold all data rows and finalize the bundle left open at the end."""
        return reduce(self.step, rows, ReconstructionState()).close_open()

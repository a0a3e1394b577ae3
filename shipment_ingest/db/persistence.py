from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from psycopg2.extras import Json, execute_values

from ..models.processing_result import PersistenceOutcome
from ..models.shipment import AddressResolution, ShipmentBundle
from ..services.geocoding import Geocoder
from ..services.known_locations import KnownLocation, find_known_location
from ..services.location_resolver import from_known_location

"""Persistence engine: one bundle, one transaction.

Steps run in foreign-key order (addresses -> vehicle/driver lookup -> trip ->
shipment -> pickup/dropoff -> details/items/link). Any failure rolls the whole
bundle back and is reported on the outcome; the caller moves on to the next
bundle. With no cursor (mock mode) bundles are accepted without writing.
"""

__all__ = [
    "PersistenceEngine",
    "PersistenceError",
    "db_status",
]

logger = logging.getLogger(__name__)

COORD_DECIMALS = 6
TRIP_STATUS = "PENDING"

_DB_STATUS = {
    "COMPLETED": "COMPLETED",
    "DELIVERED": "COMPLETED",
    "FINISHED": "COMPLETED",
    "PLANNED": "PLANNED",
    "PENDING": "PLANNED",
    "PENDING_PICKUP": "PLANNED",
    "BOOKED": "BOOKED",
    "IN_TRANSIT": "IN_TRANSIT",
    "EN_ROUTE": "IN_TRANSIT",
    "AT_PICKUP": "AT_PICKUP",
    "AT_DROPOFF": "AT_DROPOFF",
    "PENDING_DELIVERY": "AT_DROPOFF",
    "CANCELLED": "CANCELLED",
    "EXCEPTION": "EXCEPTION",
    "ERROR": "EXCEPTION",
}

SQL_FIND_ADDRESS = (
    "SELECT id, latitude, longitude FROM addresses"
    " WHERE street1 IS NOT DISTINCT FROM %s AND city IS NOT DISTINCT FROM %s"
    " AND postal_code IS NOT DISTINCT FROM %s AND country IS NOT DISTINCT FROM %s"
    " ORDER BY id LIMIT 1"
)
SQL_INSERT_ADDRESS = (
    "INSERT INTO addresses (street1, city, state, postal_code, country, latitude, longitude,"
    " raw_input, resolution_method, resolution_confidence)"
    " VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s) RETURNING id"
)
SQL_UPDATE_ADDRESS_COORDS = "UPDATE addresses SET latitude = %s, longitude = %s WHERE id = %s"
SQL_FIND_VEHICLE = "SELECT id FROM vehicles WHERE upper(plate_number) = upper(%s)"
SQL_FIND_DRIVER_BY_PHONE = "SELECT id FROM drivers WHERE phone = %s"
SQL_FIND_DRIVER_BY_NAME = "SELECT id FROM drivers WHERE upper(name) = upper(%s)"
SQL_INSERT_TRIP = (
    "INSERT INTO trips (truck_id, driver_id, driver_name, driver_phone, driver_ic_number,"
    " truck_plate, remarks, trip_status) VALUES (%s, %s, %s, %s, %s, %s, %s, %s) RETURNING id"
)
SQL_INSERT_SHIPMENT = (
    "INSERT INTO shipments_erd (source_document_id, status, shipment_document_number, trip_id,"
    " origin_address_id, destination_address_id, confidence, needs_review)"
    " VALUES (%s, %s, %s, %s, %s, %s, %s, %s) RETURNING id"
)
SQL_INSERT_PICKUP = (
    "INSERT INTO pickups (shipment_id, address_id, pickup_position, pickup_date)"
    " VALUES (%s, %s, 1, %s) RETURNING id"
)
SQL_INSERT_DROPOFF = (
    "INSERT INTO dropoffs (shipment_id, address_id, dropoff_position, dropoff_date,"
    " customer_po_numbers, recipient_contact_name, recipient_contact_phone)"
    " VALUES (%s, %s, 1, %s, %s, %s, %s) RETURNING id"
)
SQL_UPDATE_SHIPMENT_STOPS = "UPDATE shipments_erd SET pickup_id = %s, dropoff_id = %s WHERE id = %s"
SQL_INSERT_DETAILS = (
    "INSERT INTO custom_shipment_details (shipment_id, trip_id, customer_document_number,"
    " customer_shipment_number, customer_name, remarks, total_transport_weight, trip_rate,"
    " drop_charge, manpower_charge, total_charge, raw_trip_rate_input, raw_drop_charge_input,"
    " raw_manpower_charge_input, raw_total_charge_input, miscellaneous)"
    " VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)"
)
SQL_INSERT_ITEMS = (
    "INSERT INTO items (shipment_id, item_number, secondary_item_number, description,"
    " lot_serial_number, quantity, uom, weight, bin) VALUES %s"
)
SQL_LINK_DOCUMENT = "INSERT INTO document_shipment_map (document_id, shipment_id) VALUES (%s, %s)"


class PersistenceError(Exception):
    pass


def db_status(status: str | None) -> str:
    """Map a parsed shipment status onto the shipments_erd status domain."""
    key = (status or "").strip().upper().replace(" ", "_")
    return _DB_STATUS.get(key, "AWAITING_STATUS")


def _coord(value: float | None) -> float | None:
    return None if value is None else round(float(value), COORD_DECIMALS)


class PersistenceEngine:
    def __init__(
        self,
        cursor: Any,
        geocoder: Geocoder | None = None,
        lookup: Callable[[str | None], KnownLocation | None] = find_known_location,
    ) -> None:
        self.cursor = cursor
        self.geocoder = geocoder
        self.lookup = lookup

    @property
    def mock(self) -> bool:
        return self.cursor is None

    # --- helpers -----------------------------------------------------------

    def _returning_id(self, sql: str, params: tuple[Any, ...]) -> int:
        self.cursor.execute(sql, params)
        row = self.cursor.fetchone()
        if not row:
            raise PersistenceError(f"no id returned by: {sql.split(' (', 1)[0]}")
        return row[0]

    def _single_id(self, sql: str, value: str | None) -> int | None:
        """Id when exactly one row matches, else None (ambiguous counts as not found)."""
        if not value:
            return None
        self.cursor.execute(sql, (value,))
        rows = self.cursor.fetchall()
        if len(rows) == 1:
            return rows[0][0]
        if len(rows) > 1:
            logger.debug(f"{len(rows)} matches for {value!r}; treated as not found")
        return None

    def _geocode(self, resolution: AddressResolution) -> tuple[float, float] | None:
        if self.geocoder is None:
            return None
        parts = [resolution.street, resolution.city, resolution.postal_code, resolution.state, resolution.country]
        query = ", ".join(p for p in parts if p) or resolution.raw_input
        if not query:
            return None
        try:
            result = self.geocoder.geocode(query)
        except Exception as e:  # third-party geocoders; a miss leaves the address without coordinates
            logger.warning(f"geocoder raised for {query!r}: {e}")
            return None
        if result is None:
            return None
        return result.latitude, result.longitude

    def _find_or_create_address(self, resolution: AddressResolution, geocode: bool) -> int:
        street = resolution.street or resolution.raw_input
        self.cursor.execute(
            SQL_FIND_ADDRESS, (street, resolution.city, resolution.postal_code, resolution.country)
        )
        row = self.cursor.fetchone()
        if row:
            address_id, lat, lon = row[0], row[1], row[2]
            if geocode and (lat is None or lon is None):
                coords = (
                    (resolution.latitude, resolution.longitude)
                    if resolution.has_coordinates
                    else self._geocode(resolution)
                )
                if coords:
                    self.cursor.execute(
                        SQL_UPDATE_ADDRESS_COORDS, (_coord(coords[0]), _coord(coords[1]), address_id)
                    )
            return address_id

        lat, lon = resolution.latitude, resolution.longitude
        if geocode and not resolution.has_coordinates:
            coords = self._geocode(resolution)
            if coords:
                lat, lon = coords
        return self._returning_id(
            SQL_INSERT_ADDRESS,
            (
                street,
                resolution.city,
                resolution.state,
                resolution.postal_code,
                resolution.country,
                _coord(lat),
                _coord(lon),
                resolution.raw_input,
                resolution.method.value,
                round(resolution.confidence, 3),
            ),
        )

    # --- steps -------------------------------------------------------------

    def _origin_address_id(self, bundle: ShipmentBundle) -> int | None:
        origin = bundle.origin
        raw = origin.raw_input if origin is not None else bundle.origin_query.raw
        entry = self.lookup(raw)
        if entry is not None and entry.resolvable and raw:
            return self._find_or_create_address(from_known_location(raw, entry), geocode=False)
        if origin is not None and origin.is_resolved:
            return self._find_or_create_address(origin, geocode=False)
        return None

    def _destination_address_id(self, bundle: ShipmentBundle) -> int | None:
        dest = bundle.destination
        if dest is None or not (dest.raw_input or dest.street or dest.city or dest.state):
            return None
        return self._find_or_create_address(dest, geocode=True)

    def _insert_trip(self, bundle: ShipmentBundle) -> int:
        truck = bundle.truck
        vehicle_id = self._single_id(SQL_FIND_VEHICLE, truck.truck_plate)
        driver_id = self._single_id(SQL_FIND_DRIVER_BY_PHONE, truck.driver_phone)
        if driver_id is None:
            driver_id = self._single_id(SQL_FIND_DRIVER_BY_NAME, truck.driver_name)
        return self._returning_id(
            SQL_INSERT_TRIP,
            (
                vehicle_id,
                driver_id,
                truck.driver_name,
                truck.driver_phone,
                truck.driver_ic,
                truck.truck_plate,
                bundle.remarks,
                TRIP_STATUS,
            ),
        )

    def _write(self, bundle: ShipmentBundle, document_id: int | None) -> int:
        origin_id = self._origin_address_id(bundle)
        destination_id = self._destination_address_id(bundle)
        trip_id = self._insert_trip(bundle)

        shipment_id = self._returning_id(
            SQL_INSERT_SHIPMENT,
            (
                document_id,
                db_status(bundle.status),
                bundle.load_number,
                trip_id,
                origin_id,
                destination_id,
                bundle.confidence,
                bundle.needs_review,
            ),
        )

        pickup_id = self._returning_id(SQL_INSERT_PICKUP, (shipment_id, origin_id, bundle.request_date))
        dropoff_id = self._returning_id(
            SQL_INSERT_DROPOFF,
            (
                shipment_id,
                destination_id,
                bundle.promised_ship_date,
                bundle.po_number,
                bundle.recipient_name,
                bundle.recipient_phone,
            ),
        )
        self.cursor.execute(SQL_UPDATE_SHIPMENT_STOPS, (pickup_id, dropoff_id, shipment_id))

        charges = bundle.charges
        self.cursor.execute(
            SQL_INSERT_DETAILS,
            (
                shipment_id,
                trip_id,
                bundle.order_number,
                bundle.load_number,
                bundle.customer,
                bundle.remarks,
                bundle.total_weight,
                charges.trip_rate,
                charges.drop_charge,
                charges.manpower_charge,
                charges.total_charge,
                charges.raw_trip_rate,
                charges.raw_drop_charge,
                charges.raw_manpower_charge,
                charges.raw_total_charge,
                Json(bundle.miscellaneous),
            ),
        )

        if bundle.line_items:
            rows = [
                (
                    shipment_id,
                    item.item_number,
                    item.secondary_item_number,
                    item.description,
                    item.lot_serial_number,
                    item.quantity,
                    item.uom,
                    item.weight,
                    item.bin,
                )
                for item in bundle.line_items
            ]
            execute_values(self.cursor, SQL_INSERT_ITEMS, rows)

        if document_id is not None:
            self.cursor.execute(SQL_LINK_DOCUMENT, (document_id, shipment_id))
        return shipment_id

    def persist(self, bundle: ShipmentBundle, document_id: int | None) -> PersistenceOutcome:
        """Write one bundle atomically.

        Returns a failed outcome (never raises) when any step fails; the
        transaction is rolled back first so nothing of the bundle stays visible.
        """
        if self.mock:
            logger.debug(f"mock mode: bundle {bundle.identifier} accepted without DB write")
            return PersistenceOutcome(success=True, identifier=bundle.identifier)

        try:
            self.cursor.execute("BEGIN")
            shipment_id = self._write(bundle, document_id)
            self.cursor.execute("COMMIT")
        except Exception as e:  # psycopg2 errors and PersistenceError alike end the bundle
            rollback_error = None
            try:
                self.cursor.execute("ROLLBACK")
            except Exception as rb:  # connection may already be gone
                rollback_error = str(rb)
                logger.error(f"rollback failed for bundle {bundle.identifier}: {rb}")
            logger.error(f"bundle {bundle.identifier} not persisted: {e}")
            return PersistenceOutcome.failed(bundle.identifier, str(e), rollback_error)

        logger.debug(f"bundle {bundle.identifier} persisted as shipment {shipment_id}")
        return PersistenceOutcome(success=True, identifier=bundle.identifier, shipment_id=shipment_id)

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from ..models.shipment import AddressResolution, LocationQuery, ResolutionMethod
from .geocoding import Geocoder
from .known_locations import KnownLocation, match_location

"""Location resolver.

Order: structured fields -> known-location table -> geocoder -> none.
A failed resolution is returned as data (method ``none``, confidence 0) with the
raw input preserved for manual review.
"""

__all__ = [
    "DIRECT_CONFIDENCE",
    "LocationResolver",
    "assemble_direct",
    "from_known_location",
]

logger = logging.getLogger(__name__)

DIRECT_CONFIDENCE = 0.9
DEFAULT_COUNTRY = "Malaysia"
_POSTCODE = re.compile(r"\b(\d{5})\b")


def _trim_trailing(street: str, part: str | None) -> str:
    """Drop a trailing city/state repeated at the end of the street text."""
    if not part:
        return street
    idx = street.upper().rfind(part.upper())
    if idx > len(street) / 2:
        street = street[:idx]
    return street.strip().rstrip(",").strip()


def assemble_direct(query: LocationQuery) -> AddressResolution:
    street = query.street
    postal_code = query.postal_code
    if street:
        if not postal_code:
            m = _POSTCODE.search(street)
            if m:
                postal_code = m.group(1)
                street = (street[: m.start()] + street[m.end():]).strip()
        street = _trim_trailing(street, query.city)
        street = _trim_trailing(street, query.state)
        street = " ".join(street.split()).rstrip(",").strip() or None
    country = query.country or (DEFAULT_COUNTRY if query.state else None)
    parts = [street, query.city, query.state, postal_code, country]
    raw_input = ", ".join(p for p in parts if p) or query.raw
    return AddressResolution(
        raw_input=raw_input,
        street=street,
        city=query.city,
        state=query.state,
        postal_code=postal_code,
        country=country,
        method=ResolutionMethod.DIRECT,
        confidence=DIRECT_CONFIDENCE,
    )


def from_known_location(raw: str, entry: KnownLocation) -> AddressResolution:
    if not entry.resolvable:
        return AddressResolution.unresolved(raw)
    return AddressResolution(
        raw_input=raw,
        street=entry.street,
        city=entry.city,
        state=entry.state,
        postal_code=entry.postal_code,
        country=entry.country,
        latitude=entry.latitude,
        longitude=entry.longitude,
        method=ResolutionMethod.KEYWORD_LOOKUP,
        confidence=entry.confidence,
        label=entry.label,
    )


class LocationResolver:
    def __init__(
        self,
        geocoder: Geocoder | None = None,
        lookup: Callable[[str | None, str | None], KnownLocation | None] = match_location,
    ) -> None:
        self.geocoder = geocoder
        self.lookup = lookup

    def _geocode(self, text: str) -> AddressResolution | None:
        if self.geocoder is None:
            return None
        try:
            result = self.geocoder.geocode(text)
        except Exception as e:  # third-party geocoders; resolution must not raise
            logger.warning(f"geocoder raised for {text!r}: {e}")
            return None
        if result is None:
            return None
        return AddressResolution(
            raw_input=text,
            street=text,
            city=result.city,
            state=result.state,
            postal_code=result.postal_code,
            country=result.country,
            latitude=result.latitude,
            longitude=result.longitude,
            method=ResolutionMethod.GEOCODE,
            confidence=max(0.0, min(1.0, result.relevance)),
            label=result.place_name,
        )

    def resolve(self, query: LocationQuery | None, state_context: str | None = None) -> AddressResolution:
        if query is None or query.is_empty:
            return AddressResolution.unresolved(None)

        if query.has_structured_fields:
            return assemble_direct(query)

        raw = " ".join((query.raw or "").split())
        entry = self.lookup(raw, state_context)
        if entry is not None:
            logger.debug(f"location {raw!r} -> {entry.key} ({entry.confidence})")
            return from_known_location(raw, entry)

        geocoded = self._geocode(query.best_text())
        if geocoded is not None:
            return geocoded

        logger.info(f"location {raw!r} unresolved")
        return AddressResolution.unresolved(raw)

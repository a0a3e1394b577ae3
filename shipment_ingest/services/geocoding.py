from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import requests

"""Geocoding capability.

``Geocoder.geocode`` returns a GeocodeResult or None; it never raises for a
failed lookup. MapboxGeocoder is the production implementation (places endpoint,
one result, country filter).
"""

__all__ = [
    "GeocodeResult",
    "Geocoder",
    "MapboxGeocoder",
    "build_geocoder",
]

logger = logging.getLogger(__name__)

MAPBOX_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    relevance: float  # [0, 1]
    place_name: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


class Geocoder(Protocol):
    def geocode(self, address: str) -> GeocodeResult | None: ...


def _parse_feature(feature: dict[str, Any]) -> GeocodeResult:
    lon, lat = feature["center"]
    context: dict[str, str] = {}
    for part in feature.get("context") or []:
        kind = str(part.get("id", "")).split(".", 1)[0]
        if kind and kind not in context:
            context[kind] = part.get("text")
    return GeocodeResult(
        latitude=float(lat),
        longitude=float(lon),
        relevance=float(feature.get("relevance", 0.0)),
        place_name=feature.get("place_name"),
        city=context.get("place") or context.get("locality"),
        state=context.get("region"),
        postal_code=context.get("postcode"),
        country=context.get("country"),
    )


class MapboxGeocoder:
    def __init__(
        self,
        token: str,
        country: str = "MY",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.token = token
        self.country = country
        self.timeout = timeout
        self.session = session or requests.Session()

    def geocode(self, address: str) -> GeocodeResult | None:
        query = (address or "").strip()
        if not query:
            return None
        url = MAPBOX_URL.format(query=quote(query, safe=""))
        params = {"country": self.country, "limit": 1, "access_token": self.token}
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            logger.warning(f"geocoding request failed for {query!r}: {e}")
            return None
        except ValueError as e:
            logger.warning(f"geocoding response for {query!r} is not JSON: {e}")
            return None
        if not isinstance(payload, dict):
            logger.warning(f"unexpected geocoding payload for {query!r}: {type(payload).__name__}")
            return None
        features = payload.get("features") or []
        if not features:
            logger.debug(f"no geocoding result for {query!r}")
            return None
        try:
            return _parse_feature(features[0])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"unexpected geocoding payload for {query!r}: {e}")
            return None


def build_geocoder(country: str = "MY", timeout: float = 10.0) -> MapboxGeocoder | None:
    """Mapbox geocoder when MAPBOX_SECRET_TOKEN is set, else None."""
    token = os.getenv("MAPBOX_SECRET_TOKEN", "")
    if not token:
        logger.info("MAPBOX_SECRET_TOKEN not set; geocoding disabled")
        return None
    return MapboxGeocoder(token, country=country, timeout=timeout)

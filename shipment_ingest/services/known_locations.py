from __future__ import annotations

from dataclasses import dataclass

"""Known-location table for ambiguous origin / destination strings.

Partners write hubs and ports as short names ("PTP", "LOADUP JB", "NIRO"). The
keyword entries are checked first (lower-case substring match, first entry
wins, confidence 1.0); the pattern entries after them estimate a city from a
recognisable phrase and carry lower confidence. NIRO / XIN HWA depots exist in
several states, so that pattern uses the destination state as context.
"""

__all__ = [
    "KNOWN_LOCATIONS",
    "KnownLocation",
    "find_known_location",
    "match_location",
]


@dataclass(frozen=True)
class KnownLocation:
    key: str
    label: str
    latitude: float
    longitude: float
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str = "Malaysia"
    keywords: tuple[str, ...] = ()
    confidence: float = 1.0
    resolvable: bool = True  # False: recognised, but no location can be estimated


KNOWN_LOCATIONS: tuple[KnownLocation, ...] = (
    KnownLocation(
        key="PTP",
        label="Port of Tanjung Pelepas",
        street="Blok A Wisma PTP, Jalan Pelabuhan Tanjung Pelepas",
        city="Gelang Patah",
        state="Johor",
        postal_code="81560",
        latitude=1.3624,
        longitude=103.5520,
        keywords=("ptp", "pelabuhan tanjung pelepas", "tanjung pelepas"),
    ),
    KnownLocation(
        key="KLIA-CARGO",
        label="KLIA Cargo Village",
        street="KLIA Cargo Village",
        city="Sepang",
        state="Selangor",
        postal_code="64000",
        latitude=2.7456,
        longitude=101.7070,
        keywords=("klia", "cargo village", "klia cargo", "sepang"),
    ),
    KnownLocation(
        key="PENANG-PORT",
        label="Penang Port (NBCT)",
        street="North Butterworth Container Terminal",
        city="Butterworth",
        state="Penang",
        postal_code="12100",
        latitude=5.4085,
        longitude=100.3607,
        keywords=("penang port", "butterworth", "nbct"),
    ),
    KnownLocation(
        key="POS-KL",
        label="Pos Malaysia KL Mail Centre",
        street="Pusat Mel Nasional",
        city="Kuala Lumpur",
        state="W.P. Kuala Lumpur",
        postal_code="50670",
        latitude=3.1445,
        longitude=101.6931,
        keywords=("pos malaysia", "kuala lumpur", "kl mail centre"),
    ),
    KnownLocation(
        key="SHAH-ALAM-HUB",
        label="Shah Alam Logistics Hub",
        street="Jalan Jubli Perak 22/1, Seksyen 22",
        city="Shah Alam",
        state="Selangor",
        postal_code="40300",
        latitude=3.0520,
        longitude=101.5270,
        keywords=(
            "shah alam",
            "logistics hub",
            "sek 23",
            "xinhwa",
            "xin hwa",
            "niro shah alam",
            "pick up at niro",
        ),
    ),
    KnownLocation(
        key="LOADUP-JB",
        label="Loadup JB Hub",
        street="1 Jalan Kempas Utama 3/1",
        city="Johor Bahru",
        state="Johor",
        postal_code="81300",
        latitude=1.5540,
        longitude=103.7180,
        keywords=("loadup jb", "load up jb", "jb hub"),
    ),
    KnownLocation(
        key="LOADUP-PN",
        label="Loadup Prai Hub",
        street="Lot 247, Lorong Perusahaan 10",
        city="Perai",
        state="Penang",
        postal_code="13600",
        latitude=5.3580,
        longitude=100.4100,
        keywords=("loadup pn", "load up pn", "penang hub", "prai hub"),
    ),
)

_JB = dict(city="Johor Bahru", state="Johor", latitude=1.4656, longitude=103.7578)
_PERAI = dict(city="Perai", state="Penang", latitude=5.35, longitude=100.40)

# state context -> estimated NIRO / XIN HWA depot
_NIRO_BY_STATE: dict[str, dict] = {
    "JOHOR": _JB,
    "PENANG": _PERAI,
    "MELAKA": dict(city="Melaka", state="Melaka", latitude=2.1896, longitude=102.2501),
    "MALACCA": dict(city="Melaka", state="Melaka", latitude=2.1896, longitude=102.2501),
    "NEGERI SEMBILAN": dict(city="Shah Alam", state="Selangor", latitude=3.0520, longitude=101.5270),
    "SELANGOR": dict(city="Shah Alam", state="Selangor", latitude=3.0520, longitude=101.5270),
    "TERENGGANU": dict(city="Shah Alam", state="Selangor", latitude=3.0520, longitude=101.5270),
}


def find_known_location(text: str | None) -> KnownLocation | None:
    """Keyword entries only; the first entry with a matching keyword wins."""
    if not text:
        return None
    lowered = text.strip().lower()
    if not lowered:
        return None
    for entry in KNOWN_LOCATIONS:
        if any(k in lowered for k in entry.keywords):
            return entry
    return None


def _match_pattern(upper: str, state_context: str | None) -> KnownLocation | None:
    if "RETAIL OUTSTATION" in upper and "PENANG" in upper:
        return KnownLocation(
            key="EST-OUTSTATION-PN", label="Prai Hub (estimated from outstation)", confidence=0.6, **_PERAI
        )
    if "WAREHOUSE: LOT 198 B JALAN BANFOO" in upper:
        return KnownLocation(
            key="EST-ULU-TIRAM",
            label="Ulu Tiram Hub (estimated from outstation)",
            city="Ulu Tiram",
            state="Johor",
            latitude=1.5837,
            longitude=103.8242,
            confidence=0.6,
        )
    if "NIRO" in upper or "XIN HWA" in upper or "XINWHA" in upper:
        ctx = (state_context or "").strip().upper()
        estimate = _NIRO_BY_STATE.get(ctx)
        if estimate is None:
            return KnownLocation(
                key="EST-NIRO",
                label="NIRO/XINWHA central hub (estimated)",
                latitude=2.5,
                longitude=101.5,
                country="Malaysia",
                confidence=0.4,
            )
        return KnownLocation(
            key=f"EST-NIRO-{ctx.replace(' ', '-')}",
            label=f"NIRO/XINWHA {estimate['city']} hub (estimated)",
            confidence=0.4,
            **estimate,
        )
    if "RETAIL OUTSTATION - OTHER STATES" in upper:
        return KnownLocation(
            key="OUTSTATION-OTHER",
            label="Retail outstation (other states)",
            latitude=0.0,
            longitude=0.0,
            confidence=0.0,
            resolvable=False,
        )
    return None


def match_location(text: str | None, state_context: str | None = None) -> KnownLocation | None:
    """Keyword entries, then the estimating patterns."""
    entry = find_known_location(text)
    if entry is not None:
        return entry
    if not text or not text.strip():
        return None
    return _match_pattern(text.strip().upper(), state_context)

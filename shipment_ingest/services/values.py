from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

from ..models.shipment import TruckDetails

"""Cell value normalization.

Spreadsheet exports mix numbers, Excel date serials, datetimes and free text in
the same column. These helpers turn a single cell into a typed value. Parsers
raise ValueError on input they cannot interpret; callers record the message as a
processing error on the bundle instead of failing the row.
"""

__all__ = [
    "clean_text",
    "normalize_status",
    "parse_contact",
    "parse_date",
    "parse_number",
    "parse_truck_details",
]

logger = logging.getLogger(__name__)

EXCEL_EPOCH = datetime(1899, 12, 30)
MIN_SERIAL, MAX_SERIAL = 1, 60000
MIN_YEAR, MAX_YEAR = 1950, 2100

DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d-%b-%y",
    "%d-%b-%Y",
    "%d-%b-%Y %H:%M:%S",
)

COMPLETED_SYNONYMS = frozenset({"DELIVERED", "COMPLETED", "PROCESSED", "DONE", "SHIPPED"})
DEFAULT_STATUS = "AWAITING_STATUS"

_PHONE_CANDIDATE = re.compile(r"\+?[\d\s()-]{7,}\d")
_MY_PHONE = re.compile(r"^(?:60|0)(?:1\d{8,9}|[3-9]\d{7,8})$")
_NAME_PREFIX = re.compile(r"\b(?:MR|MS|MRS|SD|PIC)\b\s*[:.\s-]*", re.IGNORECASE)
_NAME_SPLIT = re.compile(r"[/\n\r;|]+")
_PARENS = re.compile(r"\(.*?\)")

_TRUCK_LINES = (
    ("driver_name", re.compile(r"^NAME:\s*(.*)", re.IGNORECASE)),
    ("driver_ic", re.compile(r"^IC:\s*(.*)", re.IGNORECASE)),
    ("driver_phone", re.compile(r"^PHONE:\s*(.*)", re.IGNORECASE)),
    ("truck_plate", re.compile(r"^TRUCK:\s*(.*)", re.IGNORECASE)),
)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return value is pd.NaT


def clean_text(value: Any) -> str | None:
    """Trimmed single-line text; integral floats lose their '.0'."""
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    text = " ".join(str(value).split())
    return text or None


def parse_number(value: Any) -> float | None:
    """Numeric cell or text with thousands separators ("1,250.5")."""
    if _is_missing(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    for prefix in ("RM", "MYR"):
        if text.upper().startswith(prefix):
            text = text[len(prefix):].strip()
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"not a number: {value!r}") from None


def _from_serial(serial: float) -> datetime:
    result = EXCEL_EPOCH + timedelta(days=serial)
    if not MIN_YEAR <= result.year <= MAX_YEAR:
        raise ValueError(f"excel serial {serial} outside {MIN_YEAR}-{MAX_YEAR}")
    return result


def parse_date(value: Any) -> datetime | None:
    """Datetime cell, Excel serial (1..60000) or one of DATE_FORMATS."""
    if _is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if MIN_SERIAL <= value <= MAX_SERIAL:
            return _from_serial(float(value))
        raise ValueError(f"unparseable date: {value!r}")

    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        serial = float(text)
    except ValueError:
        raise ValueError(f"unparseable date: {value!r}") from None
    if MIN_SERIAL <= serial <= MAX_SERIAL:
        return _from_serial(serial)
    raise ValueError(f"unparseable date: {value!r}")


def normalize_status(value: Any) -> str:
    text = clean_text(value)
    if not text:
        return DEFAULT_STATUS
    upper = text.upper()
    if upper in COMPLETED_SYNONYMS:
        return "COMPLETED"
    if upper == "IDLE":
        return "PLANNED"
    return upper.replace(" ", "_")


def parse_truck_details(value: Any) -> TruckDetails:
    """Multi-line ``NAME:`` / ``IC:`` / ``PHONE:`` / ``TRUCK:`` block."""
    if _is_missing(value):
        return TruckDetails()
    found: dict[str, str] = {}
    for line in str(value).splitlines():
        line = line.strip()
        for key, pattern in _TRUCK_LINES:
            m = pattern.match(line)
            if m and m.group(1).strip():
                found[key] = m.group(1).strip()
                break
    if not found:
        logger.warning(f"no driver/truck fields found in {str(value)!r}")
    return TruckDetails(**found)


def _validate_phone(candidate: str) -> str | None:
    digits = re.sub(r"\D", "", candidate)
    if digits.startswith("60") and "+" in candidate:
        digits = "0" + digits[2:]
    elif not digits.startswith(("0", "60")) and 9 <= len(digits) <= 11:
        digits = "0" + digits
    if not 9 <= len(digits) <= 12:
        return None
    return digits if _MY_PHONE.match(digits) else None


def parse_contact(value: Any) -> tuple[str | None, str | None]:
    """Split a contact cell into (names, phones), each joined with ' | '.

    Phones are Malaysian numbers in 0... or 60... form; anything that does not
    validate stays in the name text.
    """
    if _is_missing(value):
        return None, None
    text = str(value)
    phones: list[str] = []
    originals: list[str] = []
    for m in _PHONE_CANDIDATE.finditer(text):
        validated = _validate_phone(m.group(0))
        if validated is None:
            continue
        if validated not in phones:
            phones.append(validated)
        originals.append(m.group(0))

    for original in sorted(originals, key=len, reverse=True):
        text = text.replace(original, " ")
    text = _PARENS.sub(" ", text)

    names: list[str] = []
    for segment in _NAME_SPLIT.split(text):
        cleaned = _NAME_PREFIX.sub("", segment)
        cleaned = " ".join(cleaned.replace("(", " ").replace(")", " ").split())
        if cleaned and not cleaned.isdigit():
            names.append(cleaned)

    return (" | ".join(names) or None, " | ".join(phones) or None)

from __future__ import annotations

import io
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.config_models import HeaderDetectionConfig
from ..models.raw_row import RawRow

"""Workbook reader and row extractor.

- Every sheet is read raw (``header=None``); nothing is assumed about where the
  header sits.
- Fully-empty rows are dropped before any indexing, so every position used
  downstream refers to the filtered sequence.
- The header row is found by scoring the first non-empty rows against the alias
  vocabulary; rows above it are pre-scanned for a sheet-level origin string.
"""

__all__ = [
    "EmptySheetError",
    "HeaderDetection",
    "HeaderNotFoundError",
    "SheetData",
    "WorkbookReadError",
    "detect_header_row",
    "extract_rows",
    "is_empty_row",
    "pre_scan_for_origin",
    "read_workbook",
    "split_sheet",
]

logger = logging.getLogger(__name__)

ORIGIN_KEYWORDS = ("WAREHOUSE", "PICKUP", "ORIGIN", "DEPOT", "HUB", "OUTSTATION", "FROM")
KNOWN_OUTSTATION = "RETAIL OUTSTATION"
_ADDRESS_PATTERN = re.compile(r"\d+\s+")


class WorkbookReadError(Exception):
    """Raised when the byte buffer / file cannot be parsed as a workbook."""


class EmptySheetError(Exception):
    """Raised when a sheet has no rows left after empty-row filtering."""


class HeaderNotFoundError(Exception):
    """Raised when the fallback header index lies outside the sheet."""


@dataclass(frozen=True)
class HeaderDetection:
    index: int  # 0-based into the filtered rows
    score: int
    fallback: bool = False


@dataclass(frozen=True)
class SheetData:
    sheet_name: str
    header: HeaderDetection
    header_cells: tuple[Any, ...]
    data_rows: list[RawRow]
    origin: str | None = None  # pre-scanned sheet-level origin


def read_workbook(
    source: Path | bytes, keep_na_strings: Iterable[str] | None = None
) -> dict[str, pd.DataFrame]:
    """Read every sheet of a workbook as raw DataFrames keyed by sheet name.

    Parameters
    ----------
    source: path to an .xlsx file or the raw uploaded bytes
    keep_na_strings: strings excluded from pandas' default NaN conversion (e.g. ['NA'])
    """
    import pandas._libs.parsers as parsers

    keep = set(keep_na_strings or ())
    if keep:
        na_values = list(parsers.STR_NA_VALUES - keep)
        keep_default_na = False
    else:
        na_values = None
        keep_default_na = True

    handle: Any = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    try:
        xls = pd.ExcelFile(handle)
        dfs: dict[str, pd.DataFrame] = {}
        for name in xls.sheet_names:
            dfs[str(name)] = xls.parse(
                name, header=None, keep_default_na=keep_default_na, na_values=na_values
            )
    except Exception as e:  # openpyxl/zipfile raise a wide range of types on corrupt input
        raise WorkbookReadError(f"unreadable workbook: {e}") from e
    return dfs


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def is_empty_row(cells: Sequence[Any]) -> bool:
    return all(_is_blank(c) for c in cells)


def extract_rows(df: pd.DataFrame) -> list[RawRow]:
    rows: list[RawRow] = []
    for sheet_index, raw in enumerate(df.itertuples(index=False, name=None)):
        cells = tuple(None if _is_blank(v) and not isinstance(v, str) else v for v in raw)
        if is_empty_row(cells):
            continue
        rows.append(RawRow(position=len(rows) + 1, cells=cells, sheet_row=sheet_index + 1))
    return rows


def _cell_key(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).lower()


def detect_header_row(
    rows: Sequence[RawRow],
    vocabulary: Iterable[str],
    max_scan_rows: int = 15,
    min_matches: int = 4,
    default_index: int = 0,
) -> HeaderDetection:
    """Pick the row with the most exact vocabulary hits.

    Only rows scoring at least ``min_matches`` qualify; ties go to the earliest row.
    """
    vocab = frozenset(vocabulary)
    best: HeaderDetection | None = None
    for idx, row in enumerate(rows[:max_scan_rows]):
        score = sum(1 for c in row.cells if _cell_key(c) in vocab)
        if score >= min_matches and (best is None or score > best.score):
            best = HeaderDetection(index=idx, score=score)
    if best is not None:
        return best
    logger.warning(
        f"no header row with >= {min_matches} known columns in first {max_scan_rows} rows; "
        f"using index {default_index}"
    )
    return HeaderDetection(index=default_index, score=0, fallback=True)


def pre_scan_for_origin(rows: Sequence[RawRow], rows_to_scan: int) -> str | None:
    """Find a sheet-level origin string in the top rows.

    A candidate cell is text longer than 5 characters that either names a retail
    outstation or combines an origin keyword with an address-like number. A cell
    with content directly beneath it is treated as a column header and skipped,
    except for outstation strings, which always win.
    """
    best: str | None = None
    best_is_outstation = False
    limit = min(rows_to_scan, len(rows))
    for i in range(limit):
        cells = rows[i].cells
        below = rows[i + 1].cells if i + 1 < len(rows) else ()
        for j, value in enumerate(cells):
            if not isinstance(value, str) or len(value.strip()) <= 5:
                continue
            text = value.strip()
            upper = text.upper()
            is_outstation = KNOWN_OUTSTATION in upper
            has_keyword = any(k in upper for k in ORIGIN_KEYWORDS)
            if not (is_outstation or (has_keyword and _ADDRESS_PATTERN.search(text))):
                continue
            if is_outstation:
                if not best_is_outstation:
                    best, best_is_outstation = text, True
                continue
            looks_like_header = j < len(below) and not _is_blank(below[j])
            if looks_like_header:
                logger.debug(f"origin candidate {text!r} skipped (likely header)")
                continue
            if not best_is_outstation and (best is None or len(text) > len(best)):
                best = text
    if best:
        logger.debug(f"sheet origin candidate: {best!r}")
    return best


def split_sheet(
    df: pd.DataFrame,
    sheet_name: str,
    vocabulary: Iterable[str],
    config: HeaderDetectionConfig | None = None,
) -> SheetData:
    """Filter, detect the header and split a raw sheet into header + data rows.

    Raises
    ------
    EmptySheetError: no non-empty rows
    HeaderNotFoundError: fallback header index is beyond the last row
    """
    cfg = config or HeaderDetectionConfig()
    rows = extract_rows(df)
    if not rows:
        raise EmptySheetError(f"sheet '{sheet_name}' has no non-empty rows")

    header = detect_header_row(
        rows,
        vocabulary,
        max_scan_rows=cfg.max_scan_rows,
        min_matches=cfg.min_matches,
        default_index=cfg.default_header_index,
    )
    if header.index >= len(rows):
        raise HeaderNotFoundError(
            f"sheet '{sheet_name}' has {len(rows)} rows; default header index {header.index} out of range"
        )

    # Only rows above the header can carry a sheet-level origin
    origin = pre_scan_for_origin(rows, min(cfg.origin_scan_rows, header.index))
    return SheetData(
        sheet_name=sheet_name,
        header=header,
        header_cells=rows[header.index].cells,
        data_rows=rows[header.index + 1 :],
        origin=origin,
    )

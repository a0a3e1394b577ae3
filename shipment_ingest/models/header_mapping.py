from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .raw_row import RawRow

"""Header mapping models.

A SheetMapping is computed once per sheet from the detected header row and then
reused for every data row of that sheet. Projection splits a row into canonical
fields and a free-form miscellaneous bag keyed by the original header text.
"""

__all__ = [
    "MISCELLANEOUS",
    "HeaderMapping",
    "MappingMethod",
    "ProjectedRow",
    "SheetMapping",
]

MISCELLANEOUS = "miscellaneous"


class MappingMethod(str, Enum):
    DIRECT = "direct"
    INFERRED = "inferred"
    UNMAPPED = "unmapped"


@dataclass(frozen=True)
class HeaderMapping:
    header: str  # original header text (blank headers become column_<n>)
    column: int  # 0-based column index
    field: str  # canonical field name or MISCELLANEOUS
    method: MappingMethod
    confidence: float  # [0, 1]
    threshold: float = 0.7
    blank: bool = False  # header cell was empty

    @property
    def needs_review(self) -> bool:
        return self.field == MISCELLANEOUS or self.confidence < self.threshold

    @property
    def is_miscellaneous(self) -> bool:
        return self.field == MISCELLANEOUS


@dataclass(frozen=True)
class ProjectedRow:
    """One data row expressed in canonical fields."""
    position: int
    sheet_row: int
    fields: dict[str, Any] = field(default_factory=dict)
    miscellaneous: dict[str, str] = field(default_factory=dict)
    flagged_headers: tuple[str, ...] = ()  # review-flagged headers that supplied a value

    def get(self, name: str) -> Any:
        return self.fields.get(name)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


@dataclass(frozen=True)
class SheetMapping:
    columns: tuple[HeaderMapping, ...]

    @property
    def fraction_below_threshold(self) -> float:
        """Share of named headers whose mapping confidence is below their threshold."""
        named = [m for m in self.columns if not m.blank]
        if not named:
            return 0.0
        below = sum(1 for m in named if m.confidence < m.threshold)
        return below / len(named)

    def project(self, row: RawRow) -> ProjectedRow:
        """Split a row into canonical fields and the miscellaneous bag.

        When two headers map to the same canonical field the first non-blank
        value (left to right) wins. Blank cells are left out entirely.
        """
        fields: dict[str, Any] = {}
        misc: dict[str, str] = {}
        flagged: list[str] = []
        for mapping in self.columns:
            value = row.cell(mapping.column)
            if _is_blank(value):
                continue
            if mapping.needs_review and not mapping.blank:
                flagged.append(mapping.header)
            if mapping.is_miscellaneous:
                misc[mapping.header] = str(value).strip()
                continue
            if mapping.field not in fields:
                fields[mapping.field] = value
        return ProjectedRow(
            position=row.position,
            sheet_row=row.sheet_row,
            fields=fields,
            miscellaneous=misc,
            flagged_headers=tuple(flagged),
        )

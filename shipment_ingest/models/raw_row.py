from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""RawRow model (ephemeral, produced by the row extractor)."""

__all__ = ["RawRow"]


@dataclass(frozen=True)
class RawRow:
    position: int  # 1-based within the filtered (non-empty) sequence
    cells: tuple[Any, ...]  # NaN already converted to None
    sheet_row: int = -1  # 1-based row in the original sheet, for error records

    def cell(self, column: int) -> Any:
        if 0 <= column < len(self.cells):
            return self.cells[column]
        return None

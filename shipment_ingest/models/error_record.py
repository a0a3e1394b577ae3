from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

``row`` is the 1-based position of the offending row within its sheet; -1 marks
document- or sheet-level errors where no single row is at fault. ``sheet`` uses
the sentinel ``<DOCUMENT>`` for errors raised before any sheet was opened.
"""

__all__ = [
    "BUNDLE_PERSIST_ERROR",
    "DOCUMENT_LEVEL",
    "DOCUMENT_READ_ERROR",
    "ERROR_TYPES",
    "ErrorRecord",
    "HEADER_NOT_FOUND",
    "ROW_REJECTED",
    "SHEET_EMPTY",
    "TRANSACTION_ROLLBACK_ERROR",
]

DOCUMENT_LEVEL = "<DOCUMENT>"

# structural
SHEET_EMPTY = "SHEET_EMPTY"
HEADER_NOT_FOUND = "HEADER_NOT_FOUND"
# row-level
ROW_REJECTED = "ROW_REJECTED"
# persistence
BUNDLE_PERSIST_ERROR = "BUNDLE_PERSIST_ERROR"
TRANSACTION_ROLLBACK_ERROR = "TRANSACTION_ROLLBACK_ERROR"
# document-level
DOCUMENT_READ_ERROR = "DOCUMENT_READ_ERROR"

ERROR_TYPES = (
    SHEET_EMPTY,
    HEADER_NOT_FOUND,
    ROW_REJECTED,
    BUNDLE_PERSIST_ERROR,
    TRANSACTION_ROLLBACK_ERROR,
    DOCUMENT_READ_ERROR,
)


@dataclass(frozen=True)
class ErrorRecord:
    """One line of the error log.

    Attributes:
        timestamp: ISO8601 UTC with a 'Z' suffix
        file: Uploaded document filename
        sheet: Sheet name, or DOCUMENT_LEVEL
        row: Sheet row (1-based) or -1
        error_type: One of ERROR_TYPES (UPPER_SNAKE_CASE)
        message: Database error text or a description of the problem
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(timestamp=ts, file=file, sheet=sheet, row=row, error_type=error_type, message=message)

    @staticmethod
    def for_document(file: str, error_type: str, message: str) -> ErrorRecord:
        """Record for a problem that concerns the whole document."""
        return ErrorRecord.create(file=file, sheet=DOCUMENT_LEVEL, row=-1, error_type=error_type, message=message)

    @property
    def is_document_level(self) -> bool:
        return self.sheet == DOCUMENT_LEVEL

    def to_json_line(self) -> str:
        # asdict keeps the key set fixed to the dataclass fields
        return json.dumps(asdict(self), ensure_ascii=False)

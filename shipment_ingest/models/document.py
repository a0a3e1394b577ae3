from __future__ import annotations

from enum import Enum

"""Document lifecycle enums.

The documents table is the one piece of state external callers poll: it moves
UPLOADED -> PROCESSING -> PROCESSED | ERROR exactly once per ingest.
"""

__all__ = [
    "DocumentStatus",
    "DocumentType",
]


class DocumentStatus(str, Enum):
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    ERROR = "ERROR"


class DocumentType(str, Enum):
    ETD_REPORT = "ETD_REPORT"
    OUTSTATION_RATES = "OUTSTATION_RATES"
    UNKNOWN = "UNKNOWN"

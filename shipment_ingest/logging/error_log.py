from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import ErrorRecord

"""Error log buffering.

Records collected while documents are ingested are kept in memory and appended
to ``logs/errors-YYYYMMDD-HHMMSS.log`` (UTC, one file per run) as JSON Lines.
A run without records leaves no file behind.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """Buffer of ErrorRecords for one run; the pipeline is serial, so no locking."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._logs_dir = logs_dir or LOGS_DIR
        self._records: list[ErrorRecord] = []
        self._written: Counter[str] = Counter()
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        # stamped once so repeated flushes append to the same file
        if self._file_path is None:
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        """Records not yet flushed."""
        return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def counts_by_type(self) -> dict[str, int]:
        """Error types over the whole run, flushed or not."""
        counts = self._written + Counter(r.error_type for r in self._records)
        return dict(sorted(counts.items()))

    def flush(self) -> Path | None:
        """Append buffered records to the log file and clear the buffer.

        Returns:
            The log file path, or None when there was nothing to write
        """
        if not self._records:
            return None
        path = self.file_path
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.writelines(r.to_json_line() + "\n" for r in self._records)
        self._written.update(r.error_type for r in self._records)
        self._records.clear()
        return path

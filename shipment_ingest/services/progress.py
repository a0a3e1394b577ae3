from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

One bar counts documents and carries the running processed/errored/bundles
counters; sheets inside a document get a plain one-line indicator. Nothing is
drawn when stdout is not a TTY so CI logs stay free of control sequences.
"""

__all__ = [
    "ProgressTracker",
    "SheetProgressIndicator",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Document-level progress for one run.

    Counters are kept whether or not a bar is drawn.
    """

    def __init__(self, total_documents: int, *, description: str = "Ingesting documents") -> None:
        self.total_documents = total_documents
        self.description = description
        self.current_document = 0
        self.processed = 0
        self.errored = 0
        self.bundles = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_documents,
                desc=description,
                unit="doc",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def start_document(self, path: Path) -> None:
        self.current_document += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({path.name})")

    def finish_document(self, success: bool, bundles: int = 0) -> None:
        if success:
            self.processed += 1
        else:
            self.errored += 1
        self.bundles += bundles
        if self.pbar is not None:
            self.pbar.set_postfix(processed=self.processed, errored=self.errored, bundles=self.bundles)
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class SheetProgressIndicator:
    """One printed line per sheet of the current document."""

    def __init__(self, document_name: str, total_sheets: int) -> None:
        self.document_name = document_name
        self.total_sheets = total_sheets
        self.current_sheet = 0
        self.enabled = is_tty_enabled()

    def start_sheet(self, sheet_name: str) -> None:
        self.current_sheet += 1
        if self.enabled:
            print(f"  Sheet {self.current_sheet}/{self.total_sheets}: {sheet_name}", end="", flush=True)

    def finish_sheet(self, success: bool = True, bundles: int = 0) -> None:
        if not self.enabled:
            return
        if not success:
            print(" skipped")
        elif bundles:
            print(f" - {bundles} shipments")
        else:
            print(" - no shipments")

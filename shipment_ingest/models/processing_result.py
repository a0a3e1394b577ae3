from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .document import DocumentStatus, DocumentType

"""Processing result models.

PersistenceOutcome is produced per bundle, DocumentResult per ingested document
and ProcessingResult per directory run (the source of the SUMMARY line).
"""

__all__ = [
    "DocumentResult",
    "PersistenceOutcome",
    "ProcessingResult",
]


@dataclass(frozen=True)
class PersistenceOutcome:
    success: bool
    identifier: str  # load number, or sheet#position when absent
    shipment_id: int | None = None  # None on failure and in mock mode
    error: str | None = None
    rollback_error: str | None = None  # ROLLBACK itself failed after `error`

    @staticmethod
    def failed(identifier: str, error: str, rollback_error: str | None = None) -> PersistenceOutcome:
        return PersistenceOutcome(
            success=False, identifier=identifier, error=error, rollback_error=rollback_error
        )


@dataclass(frozen=True)
class DocumentResult:
    """Per-document summary handed back to the caller.

    Invariant: processed + failed == total_bundles.
    """
    document_id: int | None
    filename: str
    document_type: DocumentType
    status: DocumentStatus
    total_bundles: int = 0
    processed: int = 0
    failed: int = 0
    errors: tuple[str, ...] = ()  # per-bundle error strings
    needs_review: int = 0  # bundles flagged for review
    skipped_sheets: int = 0
    rejected_rows: int = 0
    orphan_rows: int = 0
    orphan_review: bool = False  # orphan policy flag_review fired
    document_error: str | None = None  # unreadable file or similar
    outcomes: tuple[PersistenceOutcome, ...] = ()

    @property
    def error_message(self) -> str | None:
        """User-facing concatenation stored on the document record."""
        parts = ([self.document_error] if self.document_error else []) + list(self.errors)
        return "; ".join(parts) if parts else None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results of one directory run."""
    processed_documents: int  # documents ending PROCESSED
    errored_documents: int  # documents ending ERROR
    total_bundles: int
    persisted_bundles: int
    failed_bundles: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    documents: list[DocumentResult] = field(default_factory=list)

    @property
    def total_documents(self) -> int:
        return self.processed_documents + self.errored_documents

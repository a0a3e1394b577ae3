from __future__ import annotations

import logging
from typing import Any

from ..models.document import DocumentStatus, DocumentType

"""Document status record.

Each write is its own short transaction so the status is visible to pollers
while bundles are still being persisted.
"""

__all__ = [
    "DocumentRecordError",
    "create_document",
    "finalize_document",
    "mark_processing",
]

logger = logging.getLogger(__name__)

SQL_CREATE_DOCUMENT = (
    "INSERT INTO documents (filename, file_type, file_size, status) VALUES (%s, %s, %s, %s) RETURNING id"
)
SQL_SET_STATUS = "UPDATE documents SET status = %s WHERE id = %s"
SQL_FINALIZE_DOCUMENT = (
    "UPDATE documents SET status = %s, shipment_count = %s, error_message = %s, parsed_date = now()"
    " WHERE id = %s"
)


class DocumentRecordError(Exception):
    pass


def _in_transaction(cursor: Any, sql: str, params: tuple[Any, ...], fetch: bool = False) -> Any:
    cursor.execute("BEGIN")
    try:
        cursor.execute(sql, params)
        row = cursor.fetchone() if fetch else None
        cursor.execute("COMMIT")
    except Exception:
        cursor.execute("ROLLBACK")
        raise
    return row


def create_document(
    cursor: Any, filename: str, file_type: DocumentType, file_size: int | None
) -> int | None:
    """Insert the document as UPLOADED; returns its id (None in mock mode)."""
    if cursor is None:
        return None
    row = _in_transaction(
        cursor,
        SQL_CREATE_DOCUMENT,
        (filename, file_type.value, file_size, DocumentStatus.UPLOADED.value),
        fetch=True,
    )
    if not row:
        raise DocumentRecordError(f"document insert for {filename} returned no id")
    return row[0]


def mark_processing(cursor: Any, document_id: int | None) -> None:
    if cursor is None or document_id is None:
        return
    _in_transaction(cursor, SQL_SET_STATUS, (DocumentStatus.PROCESSING.value, document_id))


def finalize_document(
    cursor: Any,
    document_id: int | None,
    status: DocumentStatus,
    shipment_count: int,
    error_message: str | None,
) -> None:
    if cursor is None or document_id is None:
        return
    _in_transaction(
        cursor, SQL_FINALIZE_DOCUMENT, (status.value, shipment_count, error_message, document_id)
    )
    logger.debug(f"document {document_id} -> {status.value} shipments={shipment_count}")

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import psycopg2

from ..db.documents import DocumentRecordError, create_document, finalize_document, mark_processing
from ..db.persistence import PersistenceEngine
from ..excel.field_tables import header_vocabulary
from ..excel.reader import (
    EmptySheetError,
    HeaderNotFoundError,
    WorkbookReadError,
    read_workbook,
    split_sheet,
)
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.config_models import IngestConfig
from ..models.document import DocumentStatus, DocumentType
from ..models.error_record import (
    BUNDLE_PERSIST_ERROR,
    DOCUMENT_READ_ERROR,
    HEADER_NOT_FOUND,
    ROW_REJECTED,
    SHEET_EMPTY,
    TRANSACTION_ROLLBACK_ERROR,
)
from ..models.processing_result import DocumentResult, PersistenceOutcome, ProcessingResult
from .bundle_assembler import BundleAssembler
from .field_inference import FieldInference
from .field_mapper import FieldMapper
from .geocoding import Geocoder
from .location_resolver import LocationResolver
from .mapping_cache import JsonFileCacheStore, MappingCache
from .progress import ProgressTracker, SheetProgressIndicator
from .reconstructor import ShipmentReconstructor

"""Service orchestration.

``ingest_document`` runs one uploaded workbook through the whole pipeline:
document status PROCESSING -> read -> per sheet (header detection, mapping,
reconstruction) -> per bundle (assembly, one transaction each) -> final status.

``process_all`` applies it to every .xlsx file in the configured directory and
aggregates the ProcessingResult the CLI turns into the SUMMARY line.
"""

__all__ = [
    "IngestContext",
    "ProcessingError",
    "build_mapping_cache",
    "detect_document_type",
    "ingest_document",
    "process_all",
    "scan_source_files",
]

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Fatal errors that prevent a run from starting."""


@dataclass
class IngestContext:
    """Collaborators shared by every document of a run."""
    config: IngestConfig
    cursor: Any = None  # None = mock mode
    inference: FieldInference | None = None
    geocoder: Geocoder | None = None
    cache: MappingCache = field(default_factory=MappingCache)
    error_log: ErrorLogBuffer = field(default_factory=ErrorLogBuffer)


def build_mapping_cache(config: IngestConfig) -> MappingCache:
    fm = config.field_mapping
    ttl = timedelta(days=fm.cache_ttl_days)
    if fm.cache_path:
        return MappingCache(JsonFileCacheStore(Path(fm.cache_path)), ttl=ttl)
    return MappingCache(ttl=ttl)


def detect_document_type(filename: str, keywords: dict[str, list[str]]) -> DocumentType:
    """Document type from filename keywords (case-insensitive); UNKNOWN when none match."""
    lowered = filename.lower()
    for type_name, words in keywords.items():
        if any(w.lower() in lowered for w in words):
            return DocumentType(type_name)
    return DocumentType.UNKNOWN


def _record(ctx: IngestContext, filename: str, sheet: str, row: int, error_type: str, message: str) -> None:
    ctx.error_log.append(ErrorRecord.create(file=filename, sheet=sheet, row=row, error_type=error_type, message=message))


@dataclass
class _DocumentTally:
    outcomes: list[PersistenceOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    needs_review: int = 0
    skipped_sheets: int = 0
    rejected_rows: int = 0
    orphan_rows: int = 0
    orphan_review: bool = False

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


def _process_sheet(
    ctx: IngestContext,
    filename: str,
    sheet_name: str,
    df: Any,
    document_id: int | None,
    document_type: DocumentType,
    mapper: FieldMapper,
    assembler: BundleAssembler,
    engine: PersistenceEngine,
    tally: _DocumentTally,
) -> int | None:
    """Process one sheet; returns the number of bundles found, None when skipped."""
    cfg = ctx.config
    try:
        sheet = split_sheet(df, sheet_name, header_vocabulary(document_type), cfg.header_detection)
    except EmptySheetError as e:
        logger.warning(f"{filename}/{sheet_name}: {e}; skipped")
        _record(ctx, filename, sheet_name, -1, SHEET_EMPTY, str(e))
        tally.skipped_sheets += 1
        return None
    except HeaderNotFoundError as e:
        logger.warning(f"{filename}/{sheet_name}: {e}; skipped")
        _record(ctx, filename, sheet_name, -1, HEADER_NOT_FOUND, str(e))
        tally.skipped_sheets += 1
        return None

    if sheet.header.fallback:
        _record(
            ctx,
            filename,
            sheet_name,
            -1,
            HEADER_NOT_FOUND,
            f"no header row detected; using row index {sheet.header.index}",
        )

    mapping = mapper.map_headers(sheet.header_cells)
    reconstructor = ShipmentReconstructor(
        mapping,
        sheet_name,
        required_fields=cfg.reconstruction.required_fields,
        orphan_policy=cfg.reconstruction.orphan_rows,
        sheet_origin=sheet.origin,
    )
    state = reconstructor.run(sheet.data_rows)

    for rejection in state.rejected:
        tally.rejected_rows += 1
        _record(ctx, filename, sheet_name, rejection.sheet_row, ROW_REJECTED, rejection.describe())
    tally.orphan_rows += len(state.orphans)
    tally.orphan_review = tally.orphan_review or state.orphan_review

    for bundle in state.finished:
        assembled = assembler.assemble(bundle, mapping)
        if assembled.needs_review:
            tally.needs_review += 1
        outcome = engine.persist(assembled, document_id)
        tally.outcomes.append(outcome)
        if not outcome.success:
            message = f"{outcome.identifier}: {outcome.error}"
            tally.errors.append(message)
            _record(ctx, filename, sheet_name, bundle.source.sheet_row, BUNDLE_PERSIST_ERROR, outcome.error or "")
            if outcome.rollback_error:
                _record(
                    ctx, filename, sheet_name, bundle.source.sheet_row, TRANSACTION_ROLLBACK_ERROR, outcome.rollback_error
                )
    logger.info(
        f"{filename}/{sheet_name}: shipment_rows={state.shipment_rows} bundles={len(state.finished)} "
        f"rejected={len(state.rejected)} orphans={len(state.orphans)}"
    )
    return len(state.finished)


def ingest_document(document_id: int | None, filename: str, data: bytes, context: IngestContext) -> DocumentResult:
    """Ingest one uploaded workbook and write its final document status.

    Never raises for bad content: unreadable input yields an ERROR result, sheet
    problems are recorded and skipped, and bundle failures are counted.
    """
    cfg = context.config
    cursor = context.cursor
    document_type = detect_document_type(filename, cfg.document_types)
    logger.info(f"ingesting {filename} as {document_type.value}")
    mark_processing(cursor, document_id)

    try:
        sheets = read_workbook(data, cfg.keep_na_strings)
    except WorkbookReadError as e:
        message = f"Parsing failed: {e}"
        logger.error(f"{filename}: {message}")
        context.error_log.append(ErrorRecord.for_document(filename, DOCUMENT_READ_ERROR, str(e)))
        finalize_document(cursor, document_id, DocumentStatus.ERROR, 0, message)
        return DocumentResult(
            document_id=document_id,
            filename=filename,
            document_type=document_type,
            status=DocumentStatus.ERROR,
            document_error=message,
        )

    fm = cfg.field_mapping
    mapper = FieldMapper(
        document_type,
        inference=context.inference,
        cache=context.cache,
        threshold=fm.confidence_threshold,
        inference_enabled=fm.inference_enabled,
    )
    assembler = BundleAssembler(LocationResolver(context.geocoder), cfg.confidence)
    engine = PersistenceEngine(cursor, geocoder=context.geocoder)

    tally = _DocumentTally()
    indicator = SheetProgressIndicator(filename, len(sheets))
    for sheet_name, df in sheets.items():
        indicator.start_sheet(sheet_name)
        found = _process_sheet(
            context, filename, sheet_name, df, document_id, document_type, mapper, assembler, engine, tally
        )
        indicator.finish_sheet(success=found is not None, bundles=found or 0)

    status = DocumentStatus.PROCESSED if tally.failed == 0 else DocumentStatus.ERROR
    result = DocumentResult(
        document_id=document_id,
        filename=filename,
        document_type=document_type,
        status=status,
        total_bundles=len(tally.outcomes),
        processed=tally.processed,
        failed=tally.failed,
        errors=tuple(tally.errors),
        needs_review=tally.needs_review,
        skipped_sheets=tally.skipped_sheets,
        rejected_rows=tally.rejected_rows,
        orphan_rows=tally.orphan_rows,
        orphan_review=tally.orphan_review,
        outcomes=tuple(tally.outcomes),
    )
    try:
        finalize_document(cursor, document_id, status, result.processed, result.error_message)
    except (psycopg2.Error, DocumentRecordError) as e:
        # bundles above are already committed; only the document status is lost
        logger.error(f"{filename}: final document status not written: {e}")
        context.error_log.append(ErrorRecord.for_document(filename, DOCUMENT_READ_ERROR, f"Status update failed: {e}"))
        result = replace(result, status=DocumentStatus.ERROR, document_error=f"Status update failed: {e}")
    logger.info(
        f"{filename}: status={result.status.value} bundles={result.total_bundles} "
        f"persisted={result.processed} failed={result.failed} needs_review={result.needs_review}"
    )
    return result


def scan_source_files(directory: Path) -> list[Path]:
    """List .xlsx files in the directory (non-recursive, sorted by name).

    Raises:
        ProcessingError: If the directory doesn't exist or can't be read
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")
    try:
        return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".xlsx")
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def _errored_document(filename: str, document_type: DocumentType, message: str) -> DocumentResult:
    return DocumentResult(
        document_id=None,
        filename=filename,
        document_type=document_type,
        status=DocumentStatus.ERROR,
        document_error=message,
    )


def process_all(
    config: IngestConfig,
    cursor: Any = None,
    inference: FieldInference | None = None,
    geocoder: Geocoder | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> ProcessingResult:
    """Ingest every workbook in ``config.source_directory``.

    Raises:
        ProcessingError: For fatal errors that prevent processing
    """
    start_time = datetime.now(UTC)
    context = IngestContext(
        config=config,
        cursor=cursor,
        inference=inference,
        geocoder=geocoder,
        cache=build_mapping_cache(config),
        error_log=error_log if error_log is not None else ErrorLogBuffer(),
    )

    paths = scan_source_files(Path(config.source_directory))
    documents: list[DocumentResult] = []

    with ProgressTracker(len(paths), description="Ingesting documents") as progress:
        for path in paths:
            progress.start_document(path)
            document_type = detect_document_type(path.name, config.document_types)
            try:
                data = path.read_bytes()
                document_id = create_document(cursor, path.name, document_type, len(data))
                result = ingest_document(document_id, path.name, data, context)
            except (OSError, psycopg2.Error, DocumentRecordError) as e:
                # document status writes are outside the per-bundle transactions
                logger.error(f"{path.name}: document failed: {e}")
                context.error_log.append(ErrorRecord.for_document(path.name, DOCUMENT_READ_ERROR, str(e)))
                result = _errored_document(path.name, document_type, str(e))
            documents.append(result)
            progress.finish_document(success=result.status == DocumentStatus.PROCESSED, bundles=result.total_bundles)
        processed, errored = progress.processed, progress.errored

    log_path = context.error_log.flush()
    if log_path is not None:
        counts = " ".join(f"{k}={v}" for k, v in context.error_log.counts_by_type().items())
        logger.info(f"error log written: {log_path} ({counts})")

    end_time = datetime.now(UTC)
    return ProcessingResult(
        processed_documents=processed,
        errored_documents=errored,
        total_bundles=sum(d.total_bundles for d in documents),
        persisted_bundles=sum(d.processed for d in documents),
        failed_bundles=sum(d.failed for d in documents),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        documents=documents,
    )

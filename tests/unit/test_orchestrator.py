from __future__ import annotations

from pathlib import Path

import psycopg2
import pytest

import shipment_ingest.db.persistence as persistence
from shipment_ingest.config.loader import load_config
from shipment_ingest.logging.error_log import ErrorLogBuffer
from shipment_ingest.models.config_models import IngestConfig
from shipment_ingest.models.document import DocumentStatus, DocumentType
from shipment_ingest.models.processing_result import ProcessingResult
from shipment_ingest.services.orchestrator import (
    IngestContext,
    ProcessingError,
    detect_document_type,
    ingest_document,
    process_all,
    scan_source_files,
)

from conftest import etd_rows, write_workbook

KEYWORDS = {"ETD_REPORT": ["etd"], "OUTSTATION_RATES": ["outstation"]}


class LiveCursor:
    """Minimal cursor: every RETURNING yields a fresh id, lookups find nothing."""

    def __init__(self) -> None:
        self.statements: list[tuple[str, tuple | None]] = []
        self._next_id = 0
        self._last = ""

    def execute(self, sql, params=None):
        self.statements.append((sql, params))
        self._last = sql

    def fetchone(self):
        if "RETURNING id" in self._last:
            self._next_id += 1
            return (self._next_id,)
        return None

    def fetchall(self):
        return []


@pytest.fixture()
def failing_items_for(monkeypatch):
    """Make the items insert fail for bundles containing the given item number."""

    def _install(item_number: str) -> None:
        def fake_execute_values(cursor, sql, rows, page_size=100, template=None):
            if any(r[1] == item_number for r in rows):
                raise RuntimeError(f'insert or update on table "items" violates constraint ({item_number})')
            cursor.statements.append((sql, tuple(rows)))

        monkeypatch.setattr(persistence, "execute_values", fake_execute_values)

    return _install


def _context(tmp_path: Path, cursor=None, **config) -> IngestContext:
    cfg = IngestConfig(source_directory=str(tmp_path), **config)
    return IngestContext(config=cfg, cursor=cursor, error_log=ErrorLogBuffer(tmp_path / "logs"))


def _etd_bytes(tmp_path: Path, sheets=None) -> bytes:
    path = write_workbook(tmp_path / "etd.xlsx", sheets or {"Week12": etd_rows()})
    return path.read_bytes()


@pytest.mark.parametrize(
    "name,expected",
    [
        ("ETD_week12.xlsx", DocumentType.ETD_REPORT),
        ("Outstation Rates March.xlsx", DocumentType.OUTSTATION_RATES),
        ("shipments.xlsx", DocumentType.UNKNOWN),
    ],
)
def test_detect_document_type(name, expected):
    assert detect_document_type(name, KEYWORDS) is expected


def test_scan_source_files(temp_workdir: Path):
    data_dir = temp_workdir / "data"
    (data_dir / "b_etd.xlsx").write_bytes(b"x")
    (data_dir / "a_outstation.xlsx").write_bytes(b"x")
    (data_dir / "readme.txt").write_text("ignore")
    (data_dir / "old.xls").write_bytes(b"x")
    assert [p.name for p in scan_source_files(data_dir)] == ["a_outstation.xlsx", "b_etd.xlsx"]


def test_scan_source_files_missing_directory():
    with pytest.raises(ProcessingError, match="Directory not found"):
        scan_source_files(Path("/non/existent/path"))


def test_ingest_document_mock_mode(tmp_path: Path):
    ctx = _context(tmp_path)
    result = ingest_document(None, "etd_week12.xlsx", _etd_bytes(tmp_path), ctx)

    assert result.status is DocumentStatus.PROCESSED
    assert result.document_type is DocumentType.ETD_REPORT
    assert result.total_bundles == 2
    assert result.processed == 2
    assert result.failed == 0
    assert result.processed + result.failed == result.total_bundles
    assert result.needs_review == 0
    assert result.error_message is None
    assert len(ctx.error_log) == 0


def test_ingest_document_unreadable(tmp_path: Path):
    ctx = _context(tmp_path)
    result = ingest_document(None, "broken.xlsx", b"not a workbook", ctx)

    assert result.status is DocumentStatus.ERROR
    assert result.document_error.startswith("Parsing failed:")
    assert result.total_bundles == 0
    assert [r.error_type for r in ctx.error_log.records] == ["DOCUMENT_READ_ERROR"]
    assert ctx.error_log.records[0].sheet == "<DOCUMENT>"


def test_ingest_document_skips_bad_sheets_and_records(tmp_path: Path):
    sheets = {
        "Week12": etd_rows(),
        "Blank": [[None]],
        "NoHeader": [["Load No", "Address"], ["L-9", "1 Jalan"]],
    }
    ctx = _context(tmp_path)
    result = ingest_document(None, "etd.xlsx", _etd_bytes(tmp_path, sheets), ctx)

    assert result.status is DocumentStatus.PROCESSED
    assert result.total_bundles == 2
    assert result.skipped_sheets == 1
    assert result.rejected_rows == 1
    types = [(r.sheet, r.error_type) for r in ctx.error_log.records]
    assert ("Blank", "SHEET_EMPTY") in types
    assert ("NoHeader", "HEADER_NOT_FOUND") in types
    assert ("NoHeader", "ROW_REJECTED") in types
    rejected = next(r for r in ctx.error_log.records if r.error_type == "ROW_REJECTED")
    assert rejected.row == 2


def test_ingest_document_live_partial_failure(tmp_path: Path, failing_items_for):
    failing_items_for("IT-3")
    cur = LiveCursor()
    ctx = _context(tmp_path, cursor=cur)

    result = ingest_document(5, "etd.xlsx", _etd_bytes(tmp_path), ctx)

    assert result.status is DocumentStatus.ERROR
    assert (result.processed, result.failed) == (1, 1)
    assert result.errors[0].startswith("L-002:")
    sql = [s for s, _ in cur.statements]
    assert sql.count("COMMIT") == 3  # PROCESSING, bundle L-001, final status
    assert sql.count("ROLLBACK") == 1
    final = [p for s, p in cur.statements if s.startswith("UPDATE documents SET status = %s, shipment_count")]
    assert final[0][:2] == ("ERROR", 1)
    assert "L-002" in final[0][2]
    record = next(r for r in ctx.error_log.records if r.error_type == "BUNDLE_PERSIST_ERROR")
    assert record.row == 5
    assert "violates constraint" in record.message


def test_ingest_document_live_success_status_sequence(tmp_path: Path, failing_items_for):
    failing_items_for("none")
    cur = LiveCursor()
    result = ingest_document(5, "etd.xlsx", _etd_bytes(tmp_path), _context(tmp_path, cursor=cur))
    assert result.status is DocumentStatus.PROCESSED
    statuses = [p[0] for s, p in cur.statements if s.startswith("UPDATE documents")]
    assert statuses == ["PROCESSING", "PROCESSED"]


def test_ingest_document_final_status_failure_keeps_bundle_counts(tmp_path: Path, failing_items_for):
    class FinalStatusFails(LiveCursor):
        def execute(self, sql, params=None):
            if sql.startswith("UPDATE documents SET status = %s, shipment_count"):
                raise psycopg2.OperationalError("server closed the connection unexpectedly")
            super().execute(sql, params)

    failing_items_for("none")
    cur = FinalStatusFails()
    ctx = _context(tmp_path, cursor=cur)

    result = ingest_document(5, "etd.xlsx", _etd_bytes(tmp_path), ctx)

    assert result.status is DocumentStatus.ERROR
    assert (result.total_bundles, result.processed, result.failed) == (2, 2, 0)
    assert result.document_error.startswith("Status update failed:")
    sql = [s for s, _ in cur.statements]
    assert sql.count("COMMIT") == 3  # PROCESSING and both bundles
    assert sql[-1] == "ROLLBACK"
    record = ctx.error_log.records[-1]
    assert record.error_type == "DOCUMENT_READ_ERROR"
    assert "server closed the connection" in record.message


def test_process_all_empty_directory(temp_workdir: Path, write_config: Path):
    result = process_all(load_config(write_config), cursor=None)
    assert isinstance(result, ProcessingResult)
    assert result.total_documents == 0
    assert result.total_bundles == 0
    assert result.documents == []
    assert not list((temp_workdir / "logs").glob("errors-*.log"))


def test_process_all_mixed_documents(temp_workdir: Path, write_config: Path):
    data_dir = temp_workdir / "data"
    write_workbook(data_dir / "etd_week12.xlsx", {"Week12": etd_rows()})
    (data_dir / "broken.xlsx").write_bytes(b"garbage")

    result = process_all(load_config(write_config), cursor=None)

    assert result.processed_documents == 1
    assert result.errored_documents == 1
    assert result.total_bundles == 2
    assert result.persisted_bundles == 2
    assert result.failed_bundles == 0
    assert result.elapsed_seconds >= 0
    logs = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    assert "DOCUMENT_READ_ERROR" in logs[0].read_text(encoding="utf-8")


def test_process_all_missing_directory(temp_workdir: Path):
    with pytest.raises(ProcessingError):
        process_all(IngestConfig(source_directory=str(temp_workdir / "nope")))

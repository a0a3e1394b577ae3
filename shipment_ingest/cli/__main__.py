from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from ..config.loader import ConfigError, load_config
from ..excel.field_tables import header_vocabulary
from ..excel.reader import EmptySheetError, HeaderNotFoundError, WorkbookReadError, read_workbook, split_sheet
from ..logging.init import log_summary, set_debug, setup_logging
from ..models.config_models import IngestConfig
from ..services.field_inference import build_field_inference
from ..services.field_mapper import FieldMapper
from ..services.geocoding import build_geocoder
from ..services.orchestrator import ProcessingError, detect_document_type, process_all, scan_source_files
from ..services.summary import render_summary_line

"""CLI entrypoint.

    python -m shipment_ingest.cli [--debug] [--inspect-data] [--no-inference] [--no-geocoding]

Flow: load .env -> load config/ingest.yml -> connect (or mock mode) ->
process_all -> SUMMARY line -> exit code.

Exit codes: 0 every document PROCESSED (or none found), 2 at least one document
ended ERROR or a bundle failed, 1 fatal (bad config, missing directory).
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

CONFIG_PATH = Path("config/ingest.yml")


def _resolve_dsn(cfg: IngestConfig) -> str:
    """DATABASE_URL / PGDSN, then config dsn, then PG* variables with config fallbacks."""
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: IngestConfig) -> Iterator[Any]:  # pragma: no cover (tested via integration)
    """Yield a cursor; transaction boundaries are issued explicitly by the pipeline."""
    conn = psycopg2.connect(_resolve_dsn(cfg))
    conn.autocommit = True  # BEGIN/COMMIT/ROLLBACK are executed as statements
    cur = conn.cursor()
    try:
        yield cur
    finally:
        cur.close()
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Spreadsheet shipment exports -> PostgreSQL")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument(
        "--inspect-data", action="store_true", help="Print detected headers, field mapping and first rows then exit"
    )
    p.add_argument("--no-inference", action="store_true", help="Map headers by alias table only")
    p.add_argument("--no-geocoding", action="store_true", help="Skip the geocoding fallback")
    return p.parse_args(argv)


def _apply_flags(cfg: IngestConfig, args: argparse.Namespace) -> IngestConfig:
    if args.no_inference:
        cfg = replace(cfg, field_mapping=replace(cfg.field_mapping, inference_enabled=False))
    if args.no_geocoding:
        cfg = replace(cfg, geocoding=replace(cfg.geocoding, enabled=False))
    return cfg


def _inspect_data(cfg: IngestConfig) -> int:
    try:
        paths = scan_source_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not paths:
        print("inspect: no .xlsx files")
        return EXIT_SUCCESS_ALL
    for path in paths:
        document_type = detect_document_type(path.name, cfg.document_types)
        print(f"FILE: {path.name} type={document_type.value}")
        try:
            sheets = read_workbook(path, cfg.keep_na_strings)
        except WorkbookReadError as e:
            print(f"  read_error: {e}")
            continue
        mapper = FieldMapper(document_type, inference_enabled=False)
        for name, df in sheets.items():
            try:
                sheet = split_sheet(df, name, header_vocabulary(document_type), cfg.header_detection)
            except (EmptySheetError, HeaderNotFoundError) as e:
                print(f"  SHEET: {name} skipped: {e}")
                continue
            mapping = mapper.map_headers(sheet.header_cells)
            print(
                f"  SHEET: {name} header_row={sheet.header.index} score={sheet.header.score}"
                f"{' (fallback)' if sheet.header.fallback else ''} origin={sheet.origin!r}"
            )
            for m in mapping.columns:
                if not m.blank:
                    print(f"    {m.header!r} -> {m.field} ({m.method.value}, {m.confidence:.2f})")
            for row in sheet.data_rows[:3]:
                print(f"    row {row.sheet_row}: {list(row.cells)}")
    return EXIT_SUCCESS_ALL


def _run(cfg: IngestConfig, cursor: Any) -> Any:
    inference = None
    if cfg.field_mapping.inference_enabled:
        inference = build_field_inference(cfg.field_mapping.model)
    geocoder = None
    if cfg.geocoding.enabled:
        geocoder = build_geocoder(cfg.geocoding.country, cfg.geocoding.timeout_seconds)
    return process_all(cfg, cursor=cursor, inference=inference, geocoder=geocoder)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # [] must not fall back to sys.argv (pytest's own flags would leak in)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(CONFIG_PATH)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    cfg = _apply_flags(cfg, args)

    directory = Path(cfg.source_directory)
    if not directory.exists():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL

    if args.debug:
        set_debug()
        logger.debug("debug mode enabled")

    logger.info(f"Processing documents from: {directory}")

    if args.inspect_data:
        return _inspect_data(cfg)

    db_mode = "mock"
    try:
        if os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
            result = _run(cfg, cursor=None)
        else:
            try:
                with _db_connection(cfg) as cur:
                    db_mode = "live"
                    result = _run(cfg, cursor=cur)
            except psycopg2.OperationalError as db_e:
                if db_mode == "live":
                    raise
                logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")
                result = _run(cfg, cursor=None)
    except ProcessingError as e:
        logger.error(f"processing({db_mode}): {e}")
        return EXIT_FATAL

    logger.info(f"mode={db_mode} bundles={result.total_bundles} persisted={result.persisted_bundles}")

    summary_line = render_summary_line(result)
    log_summary(summary_line[len("SUMMARY "):])  # log_summary adds the prefix

    if result.errored_documents > 0 or result.failed_bundles > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

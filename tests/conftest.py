# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path

import pandas as pd
import pytest

from shipment_ingest.logging.init import reset_logging


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    # Never reach real services from unit tests
    for name in ("OPENAI_API_KEY", "MAPBOX_SECRET_TOKEN", "DATABASE_URL", "PGDSN"):
        monkeypatch.delenv(name, raising=False)
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
timezone: UTC
document_types:
  ETD_REPORT: [etd]
  OUTSTATION_RATES: [outstation, rates]
field_mapping:
  inference_enabled: false
reconstruction:
  required_fields: [load_number, promised_ship_date, ship_to_address]
  orphan_rows: discard
geocoding:
  enabled: false
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "ingest.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def write_workbook(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    """Write raw rows (no header handling) to an .xlsx file."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


ETD_HEADER = [
    "Load No",
    "Order Number",
    "Promised Ship Date",
    "Ship To Customer Name",
    "Address Line 1 and 2",
    "City",
    "State/ Province",
    "Item Number",
    "Description 1",
    "Quantity Ordered",
    "Weight (kg)",
]


def etd_rows() -> list[list[object]]:
    """Title, header, two shipments (2 items + 1 item)."""
    return [
        ["ETD REPORT - WEEK 12", None, None, None, None, None, None, None, None, None, None],
        ETD_HEADER,
        ["L-001", "SO-1", "2024-03-18", "Acme Sdn Bhd", "12 Jalan Satu", "Shah Alam", "Selangor", "IT-1", "Pallet", 2, 10.5],
        [None, None, None, None, None, None, None, "IT-2", "Carton", 5, 4.5],
        ["L-002", "SO-2", "2024-03-19", "Beta Trading", "8 Jalan Dua", "Johor Bahru", "Johor", "IT-3", "Drum", 1, 20],
    ]


@pytest.fixture()
def workbook_factory(temp_workdir: Path) -> Callable[..., Path]:
    def _make(name: str, sheets: dict[str, list[list[object]]], directory: str = "data") -> Path:
        return write_workbook(temp_workdir / directory / name, sheets)

    return _make

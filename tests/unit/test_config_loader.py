from __future__ import annotations

from pathlib import Path

import pytest

from shipment_ingest.config.loader import ConfigError, load_config
from shipment_ingest.models.config_models import DEFAULT_REQUIRED_FIELDS


def _write(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "ingest.yml"
    p.write_text(text, encoding="utf-8")
    return p


def test_load_config_minimal_applies_defaults(tmp_path: Path):
    cfg = load_config(_write(tmp_path, "source_directory: ./data\n"))
    assert cfg.source_directory == "./data"
    assert cfg.timezone == "UTC"
    assert cfg.keep_na_strings == ()
    assert cfg.document_types["ETD_REPORT"] == ["etd"]
    assert cfg.header_detection.max_scan_rows == 15
    assert cfg.header_detection.min_matches == 4
    assert cfg.field_mapping.confidence_threshold == 0.7
    assert cfg.field_mapping.cache_ttl_days == 7
    assert cfg.reconstruction.required_fields == DEFAULT_REQUIRED_FIELDS
    assert cfg.reconstruction.orphan_rows == "discard"
    assert cfg.confidence.review_cutoff == 0.8
    assert cfg.geocoding.country == "MY"
    assert cfg.database.dsn is None


def test_load_config_sections(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.field_mapping.inference_enabled is False
    assert cfg.geocoding.enabled is False
    assert cfg.document_types["OUTSTATION_RATES"] == ["outstation", "rates"]
    assert cfg.reconstruction.required_fields == ("load_number", "promised_ship_date", "ship_to_address")
    assert cfg.database.host == "localhost"
    assert cfg.database.port == 5432


def test_load_config_keep_na_strings_tuple(tmp_path: Path):
    cfg = load_config(_write(tmp_path, "source_directory: ./data\nkeep_na_strings: [NA, N/A]\n"))
    assert cfg.keep_na_strings == ("NA", "N/A")


def test_load_config_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError, match="config file not found"):
        load_config(tmp_path / "missing.yml")


def test_load_config_invalid_yaml(tmp_path: Path):
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(_write(tmp_path, "source_directory: [unclosed\n"))


def test_load_config_root_must_be_mapping(tmp_path: Path):
    with pytest.raises(ConfigError, match="mapping"):
        load_config(_write(tmp_path, "- a\n- b\n"))


def test_load_config_missing_source_directory(tmp_path: Path):
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(_write(tmp_path, "timezone: UTC\n"))


def test_load_config_rejects_unknown_key(tmp_path: Path):
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(_write(tmp_path, "source_directory: ./data\nsheet_mappings: {}\n"))


def test_load_config_rejects_bad_orphan_policy(tmp_path: Path):
    text = "source_directory: ./data\nreconstruction:\n  orphan_rows: keep\n"
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, text))


def test_load_config_rejects_threshold_out_of_range(tmp_path: Path):
    text = "source_directory: ./data\nfield_mapping:\n  confidence_threshold: 1.5\n"
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, text))

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    ConfidenceConfig,
    DatabaseConfig,
    FieldMappingConfig,
    GeocodingConfig,
    HeaderDetectionConfig,
    IngestConfig,
    ReconstructionConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config/ingest.yml
- Validate against config_schema.json (shipped next to this module)
- Apply defaults (timezone=UTC, 7-day mapping cache, 0.7 inference threshold, ...)
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Args:
        data: Configuration data to validate

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            config data fails validation (missing keys, wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    return data.get(key) or {}


def load_config(path: Path) -> IngestConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    recon_raw = dict(_section(data, "reconstruction"))
    if "required_fields" in recon_raw:
        recon_raw["required_fields"] = tuple(recon_raw["required_fields"])
    reconstruction = ReconstructionConfig(**recon_raw)

    kwargs: dict[str, Any] = {
        "source_directory": data["source_directory"],
        "timezone": data.get("timezone", "UTC"),
        "keep_na_strings": tuple(data.get("keep_na_strings") or ()),
        "header_detection": HeaderDetectionConfig(**_section(data, "header_detection")),
        "field_mapping": FieldMappingConfig(**_section(data, "field_mapping")),
        "reconstruction": reconstruction,
        "confidence": ConfidenceConfig(**_section(data, "confidence")),
        "geocoding": GeocodingConfig(**_section(data, "geocoding")),
        "database": DatabaseConfig(**_section(data, "database")),
    }
    if data.get("document_types"):
        kwargs["document_types"] = {k: list(v) for k, v in data["document_types"].items()}
    return IngestConfig(**kwargs)

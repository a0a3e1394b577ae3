from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the shipment ingest pipeline.

The loader in shipment_ingest/config/loader.py fills these from config/ingest.yml
after schema validation; every section carries its own defaults so a minimal
YAML (source_directory only) is a valid configuration.
"""

DEFAULT_REQUIRED_FIELDS = ("load_number", "promised_ship_date", "ship_to_address")


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class HeaderDetectionConfig:
    max_scan_rows: int = 15  # non-empty rows inspected for a header
    min_matches: int = 4  # score must exceed 3 vocabulary hits
    default_header_index: int = 0  # used when no row clears min_matches
    origin_scan_rows: int = 10  # rows above the header scanned for a sheet origin


@dataclass(frozen=True)
class FieldMappingConfig:
    inference_enabled: bool = True
    confidence_threshold: float = 0.7
    cache_ttl_days: int = 7
    cache_path: str | None = None  # None -> in-memory cache
    model: str = "gpt-4o-mini"


@dataclass(frozen=True)
class ReconstructionConfig:
    required_fields: tuple[str, ...] = DEFAULT_REQUIRED_FIELDS
    orphan_rows: str = "discard"  # discard | flag_review


@dataclass(frozen=True)
class ConfidenceConfig:
    """Penalty weights for bundle confidence. Heuristic tunables, not a contract."""
    review_cutoff: float = 0.8
    mapping_weight: float = 0.3
    mapping_cap: float = 0.3
    location_weight: float = 0.2
    location_cap: float = 0.4
    error_weight: float = 0.1
    error_cap: float = 0.3


@dataclass(frozen=True)
class GeocodingConfig:
    enabled: bool = True
    country: str = "MY"
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class IngestConfig:
    """Root configuration object for a directory ingest run."""
    source_directory: str
    timezone: str = "UTC"
    keep_na_strings: tuple[str, ...] = ()  # strings pandas must not turn into NaN
    document_types: dict[str, list[str]] = field(
        default_factory=lambda: {"ETD_REPORT": ["etd"], "OUTSTATION_RATES": ["outstation"]}
    )
    header_detection: HeaderDetectionConfig = field(default_factory=HeaderDetectionConfig)
    field_mapping: FieldMappingConfig = field(default_factory=FieldMappingConfig)
    reconstruction: ReconstructionConfig = field(default_factory=ReconstructionConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    geocoding: GeocodingConfig = field(default_factory=GeocodingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

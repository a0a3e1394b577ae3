"""Domain models for the shipment ingest pipeline.

Rows flow RawRow -> ProjectedRow (via SheetMapping) -> ShipmentBundle and end up
as PersistenceOutcome / DocumentResult / ProcessingResult.
"""

from .config_models import IngestConfig
from .document import DocumentStatus, DocumentType
from .error_record import ErrorRecord
from .header_mapping import MISCELLANEOUS, HeaderMapping, MappingMethod, ProjectedRow, SheetMapping
from .processing_result import DocumentResult, PersistenceOutcome, ProcessingResult
from .raw_row import RawRow
from .shipment import (
    AddressResolution,
    Charges,
    LineItem,
    LocationQuery,
    ResolutionMethod,
    ShipmentBundle,
    SourceRef,
    TruckDetails,
)

__all__ = [
    # Configuration
    "IngestConfig",
    # Extraction / mapping
    "RawRow",
    "HeaderMapping",
    "MappingMethod",
    "MISCELLANEOUS",
    "ProjectedRow",
    "SheetMapping",
    # Shipments
    "AddressResolution",
    "Charges",
    "LineItem",
    "LocationQuery",
    "ResolutionMethod",
    "ShipmentBundle",
    "SourceRef",
    "TruckDetails",
    # Results
    "DocumentResult",
    "DocumentStatus",
    "DocumentType",
    "ErrorRecord",
    "PersistenceOutcome",
    "ProcessingResult",
]

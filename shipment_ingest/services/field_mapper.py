from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..excel.field_tables import CANONICAL_FIELDS, alias_table, candidate_fields, normalize_header
from ..models.document import DocumentType
from ..models.header_mapping import MISCELLANEOUS, HeaderMapping, MappingMethod, SheetMapping
from .field_inference import FieldInference
from .mapping_cache import MappingCache

"""Header -> canonical field mapping.

Order of attempts per header:
1. exact alias lookup for the document type (confidence 1.0, ``direct``)
2. mapping cache, then the inference capability (``inferred``); only results at
   or above the threshold naming a canonical field are accepted and cached
3. ``miscellaneous`` with confidence 0 (``unmapped``)
"""

__all__ = ["FieldMapper"]

logger = logging.getLogger(__name__)


class FieldMapper:
    def __init__(
        self,
        document_type: DocumentType = DocumentType.UNKNOWN,
        inference: FieldInference | None = None,
        cache: MappingCache | None = None,
        threshold: float = 0.7,
        inference_enabled: bool = True,
    ) -> None:
        self.document_type = document_type
        self.aliases = alias_table(document_type)
        self.inference = inference
        self.cache = cache if cache is not None else MappingCache()
        self.threshold = threshold
        self.inference_enabled = inference_enabled and inference is not None

    def _mapping(self, header: str, column: int, field: str, method: MappingMethod, confidence: float) -> HeaderMapping:
        return HeaderMapping(
            header=header,
            column=column,
            field=field,
            method=method,
            confidence=confidence,
            threshold=self.threshold,
        )

    def _infer(self, header: str, candidates: Sequence[str]) -> tuple[str, float] | None:
        cached = self.cache.get(header)
        if cached is not None:
            return cached.field, cached.confidence
        if self.inference is None:
            return None
        result = self.inference.infer(header, candidates)
        if result is None:
            return None
        if result.field not in CANONICAL_FIELDS:
            logger.debug(f"inference named unknown field {result.field!r} for {header!r}")
            return None
        if result.confidence < self.threshold:
            logger.debug(
                f"inference for {header!r} -> {result.field} below threshold "
                f"({result.confidence:.2f} < {self.threshold})"
            )
            return None
        self.cache.put(header, result.field, result.confidence)
        return result.field, result.confidence

    def map_header(
        self, header: Any, column: int = 0, candidates: Sequence[str] | None = None
    ) -> HeaderMapping:
        text = " ".join(str(header).split()) if header is not None else ""
        if not text:
            return HeaderMapping(
                header=f"column_{column + 1}",
                column=column,
                field=MISCELLANEOUS,
                method=MappingMethod.UNMAPPED,
                confidence=0.0,
                threshold=self.threshold,
                blank=True,
            )

        field = self.aliases.get(normalize_header(text))
        if field is not None:
            return self._mapping(text, column, field, MappingMethod.DIRECT, 1.0)

        if self.inference_enabled:
            inferred = self._infer(text, candidates or candidate_fields(text))
            if inferred is not None:
                return self._mapping(text, column, inferred[0], MappingMethod.INFERRED, inferred[1])

        logger.debug(f"header {text!r} unmapped -> {MISCELLANEOUS}")
        return self._mapping(text, column, MISCELLANEOUS, MappingMethod.UNMAPPED, 0.0)

    def map_headers(self, header_cells: Sequence[Any]) -> SheetMapping:
        """Map a whole header row once; every data row of the sheet reuses the result."""
        mappings = tuple(self.map_header(cell, idx) for idx, cell in enumerate(header_cells))
        unmapped = [m.header for m in mappings if m.is_miscellaneous and not m.blank]
        if unmapped:
            logger.info(f"{len(unmapped)} header(s) carried as miscellaneous: {unmapped}")
        return SheetMapping(columns=mappings)

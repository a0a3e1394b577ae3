from __future__ import annotations

import logging
from dataclasses import replace

from ..models.config_models import ConfidenceConfig
from ..models.header_mapping import SheetMapping
from ..models.shipment import AddressResolution, ShipmentBundle
from .location_resolver import LocationResolver

"""Bundle assembler.

Resolves origin and destination for a reconstructed bundle and scores it:

    confidence = 1 - (p_mapping + p_location + p_errors), clamped to [0, 1]

Each penalty is capped; weights and caps come from the ``confidence`` config
section. A side with no raw input counts as fully confident.
"""

__all__ = [
    "BundleAssembler",
    "compute_confidence",
]

logger = logging.getLogger(__name__)


def _side_confidence(resolution: AddressResolution | None) -> float:
    if resolution is None or not resolution.has_input:
        return 1.0
    return resolution.confidence


def compute_confidence(
    mapping_fraction_below: float,
    origin: AddressResolution | None,
    destination: AddressResolution | None,
    error_count: int,
    config: ConfidenceConfig,
) -> float:
    p_mapping = min(config.mapping_cap, config.mapping_weight * mapping_fraction_below)
    gap = (1.0 - _side_confidence(origin)) + (1.0 - _side_confidence(destination))
    p_location = min(config.location_cap, config.location_weight * gap)
    p_errors = min(config.error_cap, config.error_weight * error_count)
    return max(0.0, min(1.0, 1.0 - (p_mapping + p_location + p_errors)))


def _unresolved_input(resolution: AddressResolution | None) -> bool:
    return resolution is not None and resolution.has_input and not resolution.is_resolved


class BundleAssembler:
    def __init__(self, resolver: LocationResolver, config: ConfidenceConfig | None = None) -> None:
        self.resolver = resolver
        self.config = config or ConfidenceConfig()

    def assemble(self, bundle: ShipmentBundle, mapping: SheetMapping) -> ShipmentBundle:
        destination = self.resolver.resolve(bundle.destination_query)
        state_context = destination.state or bundle.destination_query.state
        origin = self.resolver.resolve(bundle.origin_query, state_context=state_context)

        confidence = compute_confidence(
            mapping.fraction_below_threshold,
            origin,
            destination,
            len(bundle.processing_errors),
            self.config,
        )
        reasons: list[str] = []
        if confidence < self.config.review_cutoff:
            reasons.append(f"confidence {confidence:.2f}")
        if bundle.flagged_headers:
            reasons.append(f"unmapped columns {list(bundle.flagged_headers)}")
        if _unresolved_input(origin):
            reasons.append("origin unresolved")
        if _unresolved_input(destination):
            reasons.append("destination unresolved")
        if reasons:
            logger.debug(f"{bundle.identifier} needs review: {', '.join(reasons)}")

        return replace(
            bundle,
            origin=origin,
            destination=destination,
            confidence=round(confidence, 4),
            needs_review=bool(reasons),
        )

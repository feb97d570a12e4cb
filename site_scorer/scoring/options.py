"""
Per-dimension scorer options, resolved once per run from ``CategorySettings``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from site_scorer.models.score import Dimension
from site_scorer.taxonomy.categories import CategorySettings


@dataclass(frozen=True)
class DemandOptions:
    radius_m: float
    base_max_per_km2: float = 4000.0
    country: str = "MY"
    data_collections: tuple[str, ...] = ("KeyFacts",)
    retries: int = 2
    delay_s: float = 0.25


@dataclass(frozen=True)
class CompetitionOptions:
    max_competitors: int = 4
    category_filter: Optional[str] = None
    category_ids: tuple[str, ...] = ()
    limit: int = 100
    delay_s: float = 0.25


@dataclass(frozen=True)
class RiskOptions:
    risk_ratio: float = 0.5
    delay_s: float = 0.25


@dataclass(frozen=True)
class ZoningOptions:
    category: str = "default"
    category_name: Optional[str] = None
    delay_s: float = 0.25


@dataclass(frozen=True)
class AccessibilityOptions:
    threshold_m: float = 400.0
    buffer_m: float = 1000.0
    delay_s: float = 0.25


@dataclass(frozen=True)
class DimensionOptions:
    """Options for all five scorers, keyed by ``Dimension`` via ``for_dimension``."""

    demand: DemandOptions
    competition: CompetitionOptions = field(default_factory=CompetitionOptions)
    risk: RiskOptions = field(default_factory=RiskOptions)
    zoning: ZoningOptions = field(default_factory=ZoningOptions)
    accessibility: AccessibilityOptions = field(default_factory=AccessibilityOptions)

    def for_dimension(self, dimension: Dimension):
        return getattr(self, dimension.value)


def build_dimension_options(
    settings: CategorySettings,
    radius_m: float,
    delay_s: Optional[float] = None,
) -> DimensionOptions:
    """Derive every scorer's options from one category preset.

    Args:
        settings: Resolved category preset.
        radius_m: Catchment radius (drives demand's area scaling).
        delay_s:  Overrides the preset's inter-hexagon delay when given.
    """
    delay = settings.request_delay_s if delay_s is None else delay_s
    return DimensionOptions(
        demand=DemandOptions(
            radius_m=radius_m,
            base_max_per_km2=settings.demand_base_max_per_km2,
            country=settings.enrichment_country,
            data_collections=settings.enrichment_data_collections,
            retries=settings.enrichment_retries,
            delay_s=delay,
        ),
        competition=CompetitionOptions(
            max_competitors=settings.max_competitors,
            category_filter=settings.places_category_filter,
            category_ids=settings.places_category_ids,
            delay_s=delay,
        ),
        risk=RiskOptions(risk_ratio=settings.risk_ratio, delay_s=delay),
        zoning=ZoningOptions(
            category=settings.slug,
            category_name=settings.places_category_filter,
            delay_s=delay,
        ),
        accessibility=AccessibilityOptions(
            threshold_m=settings.accessibility_threshold_m,
            buffer_m=settings.accessibility_buffer_m,
            delay_s=delay,
        ),
    )

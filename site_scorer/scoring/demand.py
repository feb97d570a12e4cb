"""
Demand scorer — population captured by each hexagon.

Formula
-------
    effective_max = ceil(base_max_per_km2 * pi * radius_m**2 / 1e6)
                    (falls back to base_max_per_km2 when that is 0)
    score         = 20 * pop / (pop + effective_max),  rounded to 3 dp

The saturating curve gives 10 points when a cell holds ``effective_max``
people and approaches 20 asymptotically. Scaling ``effective_max`` with the
catchment area keeps scores comparable across different radii.

``pop == 0`` scores exactly 0. A missing population scores ``None``.
"""

from __future__ import annotations

import math
from typing import Optional

from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import Dimension, DimensionScore
from site_scorer.providers.enrichment import PopulationEnrichmentClient
from site_scorer.scoring.base import DimensionScorer, clamp_score
from site_scorer.scoring.options import DemandOptions


def scaled_max_for_radius(radius_m: float, base_max_per_km2: float) -> float:
    """Population at which a cell scores half marks for this catchment size."""
    area_km2 = math.pi * radius_m * radius_m / 1e6
    scaled = math.ceil(base_max_per_km2 * area_km2)
    return scaled if scaled > 0 else base_max_per_km2


def demand_score(population: Optional[float], effective_max: float) -> Optional[float]:
    """Saturating demand score, or ``None`` for an unknown population."""
    if population is None or (isinstance(population, float) and math.isnan(population)):
        return None
    if population <= 0:
        return 0.0
    return clamp_score(20.0 * population / (population + effective_max), decimals=3)


class DemandScorer(DimensionScorer):
    dimension = Dimension.DEMAND
    requires_token = True

    def __init__(self, client: PopulationEnrichmentClient) -> None:
        self.client = client

    async def _score_hexagon(
        self, hexagon: Hexagon, token: Optional[str], options: DemandOptions
    ) -> DimensionScore:
        population = await self.client.query(
            hexagon.ring_as_lists(),
            token,
            country=options.country,
            data_collections=options.data_collections,
            retries=options.retries,
        )
        effective_max = scaled_max_for_radius(options.radius_m, options.base_max_per_km2)
        return DimensionScore(
            score=demand_score(population, effective_max),
            evidence={"population": population, "effective_max": effective_max},
        )

"""
Risk scorer — flood and landslide exposure.

The 20-point budget is split by ``risk_ratio``:

    flood_max     = 20 * risk_ratio
    landslide_max = 20 * (1 - risk_ratio)

Any intersecting feature on a layer zeroes that layer's share; a clean layer
earns its full share. If either layer query fails the combined score is
``None``; half an answer is not turned into a guess.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import Dimension, DimensionScore
from site_scorer.providers.base import ProviderError
from site_scorer.providers.hazard import HazardClient, HazardLayer, HazardResult
from site_scorer.scoring.base import DimensionScorer, clamp_score
from site_scorer.scoring.options import RiskOptions

logger = logging.getLogger(__name__)


def risk_score(
    flood: Optional[HazardResult],
    landslide: Optional[HazardResult],
    risk_ratio: float,
) -> tuple[Optional[float], Optional[float], Optional[float]]:
    """``(total, flood_part, landslide_part)``; any unknown layer makes total ``None``."""
    flood_part = None if flood is None else (0.0 if flood.intersects else 20.0 * risk_ratio)
    landslide_part = (
        None if landslide is None
        else (0.0 if landslide.intersects else 20.0 * (1.0 - risk_ratio))
    )
    if flood_part is None or landslide_part is None:
        return None, flood_part, landslide_part
    return clamp_score(round(flood_part + landslide_part, 6)), flood_part, landslide_part


class RiskScorer(DimensionScorer):
    dimension = Dimension.RISK

    def __init__(self, client: HazardClient) -> None:
        self.client = client

    async def _query(
        self, hexagon: Hexagon, layer: HazardLayer, token: Optional[str]
    ) -> tuple[Optional[HazardResult], Optional[str]]:
        try:
            return await self.client.query_polygon(hexagon.ring_as_lists(), layer, token), None
        except (ProviderError, ValueError) as exc:
            logger.warning(
                "Risk: %s query failed for hexagon %d: %s", layer.value, hexagon.hex_index, exc
            )
            return None, str(exc)

    async def _score_hexagon(
        self, hexagon: Hexagon, token: Optional[str], options: RiskOptions
    ) -> DimensionScore:
        flood, flood_err = await self._query(hexagon, HazardLayer.FLOOD, token)
        landslide, landslide_err = await self._query(hexagon, HazardLayer.LANDSLIDE, token)
        total, flood_part, landslide_part = risk_score(flood, landslide, options.risk_ratio)

        evidence: dict[str, Any] = {
            "flood_area_ha": flood.total_area_ha if flood else None,
            "flood_feature_count": flood.count if flood else None,
            "landslide_count": landslide.count if landslide else None,
            "has_landslide": landslide.intersects if landslide else None,
            "risk_ratio": options.risk_ratio,
            "flood_score": flood_part,
            "landslide_score": landslide_part,
        }
        errors = [e for e in (flood_err, landslide_err) if e]
        if errors:
            evidence["error"] = "; ".join(errors)
        return DimensionScore(score=total, evidence=evidence)

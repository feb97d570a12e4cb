"""
Accessibility scorer — distance from the cell centroid to the nearest facility.

    score = 20 * (1 - min(distance_m / threshold_m, 1))

Distances are haversine meters. A provider that answers with no facilities
even after the buffered search scores 0; a provider failure scores ``None``.
"""

from __future__ import annotations

from typing import Optional

from site_scorer.geometry.projection import haversine_m
from site_scorer.models.hexagon import Hexagon, LonLat
from site_scorer.models.score import Dimension, DimensionScore
from site_scorer.providers.facilities import FacilitiesClient
from site_scorer.scoring.base import DimensionScorer, clamp_score
from site_scorer.scoring.options import AccessibilityOptions


def nearest_point(
    origin: LonLat, points: list[LonLat]
) -> tuple[Optional[LonLat], Optional[float]]:
    best: Optional[LonLat] = None
    best_d: Optional[float] = None
    for p in points:
        d = haversine_m(origin.lon, origin.lat, p.lon, p.lat)
        if best_d is None or d < best_d:
            best, best_d = p, d
    return best, best_d


def accessibility_score(distance_m: Optional[float], threshold_m: float) -> float:
    if distance_m is None:
        return 0.0
    ratio = min(distance_m / threshold_m, 1.0) if threshold_m > 0 else 1.0
    return clamp_score(20.0 * (1.0 - ratio))


class AccessibilityScorer(DimensionScorer):
    dimension = Dimension.ACCESSIBILITY

    def __init__(self, client: FacilitiesClient) -> None:
        self.client = client

    async def _score_hexagon(
        self, hexagon: Hexagon, token: Optional[str], options: AccessibilityOptions
    ) -> DimensionScore:
        centroid = hexagon.centroid
        result = await self.client.query_polygon_or_buffered_point(
            hexagon.ring_as_lists(), centroid, token, buffer_m=options.buffer_m
        )
        nearest, distance = nearest_point(centroid, result.points)
        return DimensionScore(
            score=accessibility_score(distance, options.threshold_m),
            evidence={
                "distance_m": round(distance, 2) if distance is not None else None,
                "nearest": {"lon": nearest.lon, "lat": nearest.lat} if nearest else None,
                "feature_count": len(result.points),
                "used_buffer": result.used_buffer,
                "polygon_error": result.polygon_error,
            },
        )

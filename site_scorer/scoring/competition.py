"""
Competition scorer — fewer same-category places inside a cell scores higher.

    score = 20 * (1 - min(count / max_competitors, 1))

Places are fetched per hexagon bounding box and then filtered to those
strictly inside the hexagon polygon. Category ids come from the preset, or
are resolved once per run from the preset's text filter; when the filter
matches no category the search runs unfiltered.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from shapely.geometry import Point, Polygon

from site_scorer.models.hexagon import Hexagon, LonLat
from site_scorer.models.score import Dimension, DimensionScore
from site_scorer.providers.base import ProviderError
from site_scorer.providers.places import PlacesClient
from site_scorer.scoring.base import DimensionScorer, ScoringModuleError, clamp_score
from site_scorer.scoring.options import CompetitionOptions

logger = logging.getLogger(__name__)


def count_points_inside(hexagon: Hexagon, points: list[LonLat]) -> int:
    """Points strictly inside the hexagon (boundary points excluded)."""
    polygon = Polygon(hexagon.open_ring)
    return sum(1 for p in points if polygon.contains(Point(p.lon, p.lat)))


def competition_score(count: int, max_competitors: int) -> float:
    ratio = min(count / max_competitors, 1.0) if max_competitors > 0 else 1.0
    return clamp_score(20.0 * (1.0 - ratio))


class CompetitionScorer(DimensionScorer):
    dimension = Dimension.COMPETITION
    requires_token = True

    def __init__(self, client: PlacesClient) -> None:
        self.client = client

    async def _prepare(
        self, token: Optional[str], options: CompetitionOptions
    ) -> CompetitionOptions:
        if options.category_ids or not options.category_filter:
            return options
        try:
            ids = await self.client.resolve_category_ids(options.category_filter, token)
        except ProviderError as exc:
            raise ScoringModuleError(
                f"Could not resolve place categories for '{options.category_filter}': {exc}"
            ) from exc
        if not ids:
            logger.warning(
                "No place categories match '%s'; searching unfiltered.",
                options.category_filter,
            )
        return dataclasses.replace(options, category_ids=tuple(ids))

    async def _score_hexagon(
        self, hexagon: Hexagon, token: Optional[str], options: CompetitionOptions
    ) -> DimensionScore:
        points = await self.client.query_extent(
            hexagon.bbox, options.category_ids, token, limit=options.limit
        )
        count = count_points_inside(hexagon, points)
        return DimensionScore(
            score=competition_score(count, options.max_competitors),
            evidence={
                "count": count,
                "returned": len(points),
                "max_competitors": options.max_competitors,
            },
        )

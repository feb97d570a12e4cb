"""
Places client: category-id lookup and bounding-box place search.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from site_scorer.models.hexagon import LonLat
from site_scorer.providers.base import ProviderClient

logger = logging.getLogger(__name__)

MAX_CATEGORY_IDS = 10
DEFAULT_PLACE_LIMIT = 100


def _place_point(place: dict[str, Any]) -> Optional[LonLat]:
    """A place's coordinate from ``location``, ``geometry`` or ``attributes``."""
    for key in ("location", "geometry", "attributes"):
        node = place.get(key)
        if isinstance(node, dict) and node.get("x") is not None and node.get("y") is not None:
            try:
                return LonLat(lon=float(node["x"]), lat=float(node["y"]))
            except (TypeError, ValueError):
                return None
    return None


def parse_place_points(payload: dict[str, Any]) -> list[LonLat]:
    """All usable coordinates from a within-extent response.

    Results without a recognisable coordinate are dropped.
    """
    results = payload.get("results")
    if results is None:
        results = payload.get("features", [])
    if not isinstance(results, list):
        raise ValueError("Places response 'results' is not a list.")
    points = []
    for place in results:
        if isinstance(place, dict) and (pt := _place_point(place)) is not None:
            points.append(pt)
    return points


class PlacesClient(ProviderClient):
    """ArcGIS Places service (``/categories`` and ``/places/within-extent``)."""

    name = "places"

    def __init__(self, http, policy=None, base_url: str = "") -> None:
        super().__init__(http, policy)
        self.base_url = base_url.rstrip("/")

    async def resolve_category_ids(
        self, category_filter: str, token: Optional[str]
    ) -> list[str]:
        """Top ``MAX_CATEGORY_IDS`` category ids matching ``category_filter``.

        Raises:
            ProviderError: When the categories call fails after retries.
        """
        payload = await self.request_json(
            "GET",
            f"{self.base_url}/categories",
            params={"filter": category_filter, "f": "json"},
            token=token,
        )
        categories = payload.get("categories") or []
        ids: list[str] = []
        for cat in categories[:MAX_CATEGORY_IDS]:
            if not isinstance(cat, dict):
                continue
            cat_id = cat.get("categoryId") or cat.get("id")
            if cat_id:
                ids.append(str(cat_id))
        logger.info("Places categories for '%s': %s", category_filter, ids)
        return ids

    async def query_extent(
        self,
        bbox: tuple[float, float, float, float],
        category_ids: Sequence[str],
        token: Optional[str],
        limit: int = DEFAULT_PLACE_LIMIT,
    ) -> list[LonLat]:
        """Places inside ``bbox`` (``min_lon, min_lat, max_lon, max_lat``).

        Raises:
            ProviderError: When the search fails after retries.
        """
        xmin, ymin, xmax, ymax = bbox
        params: dict[str, Any] = {
            "xmin": xmin,
            "ymin": ymin,
            "xmax": xmax,
            "ymax": ymax,
            "limit": limit,
            "f": "json",
        }
        if category_ids:
            params["categoryIds"] = ",".join(category_ids)
        payload = await self.request_json(
            "GET",
            f"{self.base_url}/places/within-extent",
            params=params,
            token=token,
        )
        return parse_place_points(payload)

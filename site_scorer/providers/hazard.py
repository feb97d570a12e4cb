"""
Hazard layer client (flood extents and landslide zones).

Both layers live on services that index geometry in a projected, meter-based
spatial reference, each with its own wkid. Hexagon rings are reprojected from
WGS84 into the layer's wkid before the query and sent with a matching ``inSR``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from site_scorer.geometry.projection import project_ring
from site_scorer.providers.base import (
    ProviderClient,
    features_of,
    layer_query_url,
    polygon_query_params,
)

logger = logging.getLogger(__name__)

# Attribute spellings seen for flood polygon area, in hectares.
_AREA_FIELDS = ("area_ha", "Area_Ha", "AREA_HA", "area")


class HazardLayer(StrEnum):
    FLOOD = "flood"
    LANDSLIDE = "landslide"


@dataclass
class HazardResult:
    """Features of one hazard layer intersecting one hexagon.

    Attributes:
        layer:         Which layer was queried.
        features:      Raw intersecting features.
        total_area_ha: Summed area attribute (flood layers; 0 when absent).
    """

    layer: HazardLayer
    features: list[dict[str, Any]] = field(default_factory=list)
    total_area_ha: float = 0.0

    @property
    def count(self) -> int:
        return len(self.features)

    @property
    def intersects(self) -> bool:
        return bool(self.features)


def _feature_area_ha(feature: dict[str, Any]) -> float:
    attrs = feature.get("attributes") or {}
    for name in _AREA_FIELDS:
        value = attrs.get(name)
        if value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0
    return 0.0


class HazardClient(ProviderClient):
    """Polygon intersection queries against the flood and landslide layers."""

    name = "hazard"

    def __init__(
        self,
        http,
        policy=None,
        flood_url: str = "",
        landslide_url: str = "",
        flood_wkid: int = 3857,
        landslide_wkid: int = 3857,
    ) -> None:
        super().__init__(http, policy)
        self.layer_urls = {
            HazardLayer.FLOOD: flood_url,
            HazardLayer.LANDSLIDE: landslide_url,
        }
        self.layer_wkids = {
            HazardLayer.FLOOD: flood_wkid,
            HazardLayer.LANDSLIDE: landslide_wkid,
        }

    async def query_polygon(
        self,
        ring: list[list[float]],
        layer: HazardLayer,
        token: Optional[str],
    ) -> HazardResult:
        """Intersect ``ring`` (lon/lat) with ``layer``.

        Raises:
            ProviderError: When the query fails after retries.
            ValueError:    When the ring cannot be reprojected into the layer's
                           wkid, or the response is structurally invalid.
        """
        wkid = self.layer_wkids[layer]
        projected = project_ring([(p[0], p[1]) for p in ring], wkid)
        payload = await self.request_json(
            "POST",
            layer_query_url(self.layer_urls[layer]),
            data=polygon_query_params(projected, wkid=wkid),
            token=token,
        )
        features = features_of(payload)
        total = sum(_feature_area_ha(f) for f in features)
        return HazardResult(layer=layer, features=features, total_area_ha=total)

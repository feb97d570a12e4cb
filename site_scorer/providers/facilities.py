"""
Facilities layer client for the accessibility scorer.

Two-stage lookup per hexagon:
  1. features intersecting the hexagon polygon;
  2. when that finds nothing (or fails), features within ``buffer_m`` of the
     centroid using a buffered point query.

Feature coordinates are normalised to lon/lat. A layer answering in a projected
reference declares its wkid on the geometry or the response
``spatialReference``; any declared wkid is reprojected with pyproj. Only when
no wkid is declared does coordinate magnitude decide (meters are read as Web
Mercator).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from site_scorer.geometry.projection import to_lonlat
from site_scorer.models.hexagon import LonLat
from site_scorer.providers.base import (
    ProviderClient,
    ProviderError,
    features_of,
    layer_query_url,
    polygon_query_params,
)

logger = logging.getLogger(__name__)


@dataclass
class FacilitiesResult:
    """Facility points found for one hexagon.

    Attributes:
        points:      Facility coordinates in lon/lat.
        used_buffer: ``True`` when the buffered point query produced the result.
        polygon_error: Message from a failed polygon query, if any.
    """

    points: list[LonLat] = field(default_factory=list)
    used_buffer: bool = False
    polygon_error: Optional[str] = None


def _wkid(sr: Any) -> Optional[int]:
    if isinstance(sr, dict):
        value = sr.get("latestWkid") or sr.get("wkid")
        if isinstance(value, int):
            return value
    return None


def parse_facility_points(payload: dict[str, Any]) -> list[LonLat]:
    """Feature points (``x/y`` or first of ``points``) as lon/lat.

    Raises:
        ValueError: When a declared wkid is unknown or a point cannot be
                    reprojected.
    """
    response_wkid = _wkid(payload.get("spatialReference"))
    points: list[LonLat] = []
    for feature in features_of(payload):
        geom = feature.get("geometry") or {}
        if geom.get("x") is not None and geom.get("y") is not None:
            x, y = geom["x"], geom["y"]
        elif isinstance(geom.get("points"), list) and geom["points"]:
            x, y = geom["points"][0][0], geom["points"][0][1]
        else:
            continue
        try:
            fx, fy = float(x), float(y)
        except (TypeError, ValueError):
            continue
        wkid = _wkid(geom.get("spatialReference")) or response_wkid
        lon, lat = to_lonlat(fx, fy, wkid)
        points.append(LonLat(lon=lon, lat=lat))
    return points


class FacilitiesClient(ProviderClient):
    name = "facilities"

    def __init__(self, http, policy=None, layer_url: str = "") -> None:
        super().__init__(http, policy)
        self.layer_url = layer_url

    async def query_polygon_or_buffered_point(
        self,
        ring: list[list[float]],
        centroid: LonLat,
        token: Optional[str],
        buffer_m: float = 1000.0,
    ) -> FacilitiesResult:
        """Facilities in the hexagon, else within ``buffer_m`` of its centroid.

        An empty ``points`` list means the provider answered with no features
        even after buffering.

        Raises:
            ProviderError: When the buffered query fails after retries.
        """
        url = layer_query_url(self.layer_url)
        polygon_error: Optional[str] = None
        try:
            payload = await self.request_json(
                "POST",
                url,
                data=polygon_query_params(ring, wkid=4326, return_geometry=True),
                token=token,
            )
            points = parse_facility_points(payload)
            if points:
                return FacilitiesResult(points=points)
        except (ProviderError, ValueError) as exc:
            polygon_error = str(exc)
            logger.debug("Facilities polygon query failed, trying buffer: %s", exc)

        payload = await self.request_json(
            "POST",
            url,
            data={
                "geometry": json.dumps({
                    "x": centroid.lon,
                    "y": centroid.lat,
                    "spatialReference": {"wkid": 4326},
                }),
                "geometryType": "esriGeometryPoint",
                "inSR": "4326",
                "distance": str(buffer_m),
                "units": "esriSRUnit_Meter",
                "spatialRel": "esriSpatialRelIntersects",
                "outFields": "*",
                "returnGeometry": "true",
                "f": "json",
            },
            token=token,
        )
        return FacilitiesResult(
            points=parse_facility_points(payload),
            used_buffer=True,
            polygon_error=polygon_error,
        )

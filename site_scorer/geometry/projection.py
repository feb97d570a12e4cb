"""
Coordinate reprojection and distances used across the scorers.

Reprojection goes through pyproj. Provider layers declare their spatial
reference as an ArcGIS wkid; a wkid is resolved as an EPSG code first and
as an ESRI code otherwise (102100 and friends). Transformers are built with
``always_xy=True`` so every tuple in this package is ``(lon, lat)`` or
``(x, y)`` regardless of the CRS axis order.

Distances stay on a sphere: ``EARTH_RADIUS_M`` (mean radius) for haversine,
``METERS_PER_DEGREE_LAT`` for the flat-earth approximation used by the grid.
"""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Iterable, Optional

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

METERS_PER_DEGREE_LAT = 111_320.0
EARTH_RADIUS_M = 6_371_000.0

WGS84_WKID = 4326
WEB_MERCATOR_WKID = 3857

# Degree values never exceed this magnitude.
_DEGREE_LIMIT = 1000.0


def meters_per_degree_lon(lat: float) -> float:
    """Length of one degree of longitude at ``lat`` (equirectangular)."""
    return METERS_PER_DEGREE_LAT * math.cos(math.radians(lat))


def equirectangular_distance_m(
    lon1: float, lat1: float, lon2: float, lat2: float, ref_lat: Optional[float] = None
) -> float:
    """Flat-earth distance in meters, scaled at ``ref_lat`` (default ``lat1``).

    Only meaningful for separations of a few kilometers.
    """
    ref = lat1 if ref_lat is None else ref_lat
    dx = (lon2 - lon1) * meters_per_degree_lon(ref)
    dy = (lat2 - lat1) * METERS_PER_DEGREE_LAT
    return math.hypot(dx, dy)


def haversine_m(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """Great-circle distance in meters between two lon/lat points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


# ── Reprojection ──────────────────────────────────────────────────────────────

@lru_cache(maxsize=None)
def crs_for_wkid(wkid: int) -> CRS:
    """Resolve an ArcGIS wkid to a pyproj ``CRS``.

    Raises:
        ValueError: When neither the EPSG nor the ESRI registry knows ``wkid``.
    """
    for authority in ("EPSG", "ESRI"):
        try:
            return CRS.from_user_input(f"{authority}:{wkid}")
        except CRSError:
            continue
    raise ValueError(f"Unknown spatial reference wkid={wkid}.")


@lru_cache(maxsize=64)
def transformer_between(source_wkid: int, target_wkid: int) -> Transformer:
    """Cached ``(x, y)``-ordered transformer from one wkid to another."""
    return Transformer.from_crs(
        crs_for_wkid(source_wkid), crs_for_wkid(target_wkid), always_xy=True
    )


def _transform(x: float, y: float, source_wkid: int, target_wkid: int) -> tuple[float, float]:
    tx, ty = transformer_between(source_wkid, target_wkid).transform(x, y)
    if not (math.isfinite(tx) and math.isfinite(ty)):
        raise ValueError(
            f"({x}, {y}) cannot be transformed from wkid={source_wkid} to wkid={target_wkid}."
        )
    return tx, ty


def project_point(lon: float, lat: float, wkid: int) -> tuple[float, float]:
    """WGS84 lon/lat to ``(x, y)`` in ``wkid``."""
    if wkid == WGS84_WKID:
        return lon, lat
    return _transform(lon, lat, WGS84_WKID, wkid)


def unproject_point(x: float, y: float, wkid: int) -> tuple[float, float]:
    """``(x, y)`` in ``wkid`` to WGS84 lon/lat."""
    if wkid == WGS84_WKID:
        return x, y
    return _transform(x, y, wkid, WGS84_WKID)


def is_likely_web_mercator(x: float, y: float) -> bool:
    """Guess, for a coordinate with no declared wkid, that it is in meters.

    Any value outside the range a degree could take is read as Web Mercator,
    the default output reference of ArcGIS feature services.
    """
    return abs(x) > _DEGREE_LIMIT or abs(y) > _DEGREE_LIMIT


def to_lonlat(x: float, y: float, wkid: Optional[int] = None) -> tuple[float, float]:
    """Normalise a provider coordinate to lon/lat.

    A declared ``wkid`` is always honoured; the magnitude guess only applies
    when the provider declares none.

    Raises:
        ValueError: For an unknown wkid or an untransformable coordinate.
    """
    if wkid is None:
        if is_likely_web_mercator(x, y):
            return unproject_point(x, y, WEB_MERCATOR_WKID)
        return x, y
    return unproject_point(x, y, wkid)


def project_ring(
    ring: Iterable[tuple[float, float]], wkid: int
) -> list[list[float]]:
    """Reproject a lon/lat ring into ``wkid``.

    Raises:
        ValueError: For an unknown wkid or an untransformable vertex.
    """
    return [list(project_point(lon, lat, wkid)) for lon, lat in ring]

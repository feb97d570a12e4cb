"""
Hexagon tessellation of a circular catchment.

Flat-topped regular hexagons are laid out on an offset-column (honeycomb) grid:

    horizontal spacing = 1.5 * side
    vertical spacing   = sqrt(3) * side
    odd columns shifted up by half the vertical spacing

Meters are converted to degrees with a local equirectangular approximation
(``111320`` m per degree of latitude, ``111320 * cos(lat)`` per degree of
longitude). The side length is converted with the longitude scale for both
axes, so cells are regular in degree space and tile without gaps.

Known limitation: the approximation is built at the center latitude and is
only accurate for catchments of a few kilometers. Larger radii accumulate
distortion that this module does not correct; callers bound the radius.

Candidate centers are kept when their distance to the reference point is at
most ``radius_m``, which gives a roughly circular catchment. Boundary cells
may stick partly outside the nominal radius.

Output order is column-major (columns left to right, rows bottom to top
within each column) and is the ``hex_index`` every downstream stage uses.
"""

from __future__ import annotations

import math

from site_scorer.geometry.projection import (
    METERS_PER_DEGREE_LAT,
    equirectangular_distance_m,
    meters_per_degree_lon,
)
from site_scorer.models.hexagon import Coordinate, Hexagon

COORD_DECIMALS = 6


class GeometryInputError(ValueError):
    """Center, radius or side length cannot produce a tessellation."""


def create_flat_top_hexagon(
    center_lon: float, center_lat: float, side_deg: float
) -> tuple[Coordinate, ...]:
    """Closed 7-vertex ring of a flat-topped hexagon, vertices at 0°, 60° … 300°."""
    vertices: list[Coordinate] = []
    for i in range(6):
        angle = math.radians(60 * i)
        lon = round(center_lon + side_deg * math.cos(angle), COORD_DECIMALS)
        lat = round(center_lat + side_deg * math.sin(angle), COORD_DECIMALS)
        vertices.append((lon, lat))
    vertices.append(vertices[0])
    return tuple(vertices)


def _validate_inputs(
    center_lon: float, center_lat: float, radius_m: float, side_length_m: float
) -> None:
    for name, value in (
        ("center_lon", center_lon),
        ("center_lat", center_lat),
        ("radius_m", radius_m),
        ("side_length_m", side_length_m),
    ):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise GeometryInputError(f"{name} must be a number, got {value!r}.")
        if not math.isfinite(value):
            raise GeometryInputError(f"{name} must be finite, got {value!r}.")
    if not -90.0 < center_lat < 90.0:
        raise GeometryInputError(f"center_lat must be within (-90, 90), got {center_lat}.")
    if not -180.0 <= center_lon <= 180.0:
        raise GeometryInputError(f"center_lon must be within [-180, 180], got {center_lon}.")
    if radius_m <= 0:
        raise GeometryInputError(f"radius_m must be > 0, got {radius_m}.")
    if side_length_m <= 0:
        raise GeometryInputError(f"side_length_m must be > 0, got {side_length_m}.")


def generate_hexagons(
    center_lon: float,
    center_lat: float,
    radius_m: float,
    side_length_m: float,
) -> list[Hexagon]:
    """Tessellate the disc of ``radius_m`` around the center into hexagons.

    Args:
        center_lon:    Reference point longitude (degrees).
        center_lat:    Reference point latitude (degrees).
        radius_m:      Catchment radius in meters.
        side_length_m: Hexagon side length in meters.

    Returns:
        Hexagons in deterministic column-major order, ``hex_index`` 0..n-1.

    Raises:
        GeometryInputError: On non-numeric, non-finite or out-of-range input.
    """
    _validate_inputs(center_lon, center_lat, radius_m, side_length_m)

    lon_scale = meters_per_degree_lon(center_lat)
    side_deg = side_length_m / lon_scale
    horiz = 1.5 * side_deg
    vert = math.sqrt(3) * side_deg

    radius_lon = radius_m / lon_scale
    radius_lat = radius_m / METERS_PER_DEGREE_LAT
    max_cols = math.ceil(radius_lon / horiz) + 1
    max_rows = math.ceil(radius_lat / vert) + 1

    hexagons: list[Hexagon] = []
    for col in range(-max_cols, max_cols + 1):
        col_offset = 0.0 if col % 2 == 0 else vert / 2
        for row in range(-max_rows, max_rows + 1):
            cx = center_lon + col * horiz
            cy = center_lat + row * vert + col_offset
            if equirectangular_distance_m(center_lon, center_lat, cx, cy) > radius_m:
                continue
            hexagons.append(
                Hexagon(
                    hex_index=len(hexagons),
                    ring=create_flat_top_hexagon(cx, cy, side_deg),
                )
            )
    return hexagons

"""
Hexagon cell — the atomic unit of scoring.

A ``Hexagon`` is immutable once generated. Its ring is always 7 ``(lon, lat)``
vertices with the first repeated as the last. Persisting a hexagon does not
mutate it; the store returns ``hexagon.with_id(persisted_id)`` instead.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

RING_VERTEX_COUNT = 7

Coordinate = tuple[float, float]


class LonLat(BaseModel):
    """A WGS84 coordinate in degrees."""

    model_config = ConfigDict(frozen=True)

    lon: float
    lat: float


def polygon_centroid(ring: tuple[Coordinate, ...] | list[Coordinate]) -> LonLat:
    """Arithmetic mean of a ring's vertices, ignoring the closing duplicate.

    Raises:
        ValueError: If ``ring`` is empty.
    """
    pts = list(ring)
    if not pts:
        raise ValueError("Cannot compute the centroid of an empty ring.")
    if len(pts) > 1 and tuple(pts[0]) == tuple(pts[-1]):
        pts = pts[:-1]
    n = len(pts)
    return LonLat(
        lon=sum(float(p[0]) for p in pts) / n,
        lat=sum(float(p[1]) for p in pts) / n,
    )


class Hexagon(BaseModel):
    """One flat-topped hexagon cell of a catchment tessellation.

    Attributes:
        hex_index: Position in generation order (0-based); the key every
            per-dimension result list is zipped on.
        hex_id:    Store-assigned id; ``None`` until persisted.
        ring:      7 ``(lon, lat)`` vertices, closed.
    """

    model_config = ConfigDict(frozen=True)

    hex_index: int
    hex_id: Optional[int] = None
    ring: tuple[Coordinate, ...]

    @field_validator("ring")
    @classmethod
    def validate_ring(cls, v: tuple[Coordinate, ...]) -> tuple[Coordinate, ...]:
        if len(v) != RING_VERTEX_COUNT:
            raise ValueError(
                f"Hexagon ring must have {RING_VERTEX_COUNT} vertices, got {len(v)}."
            )
        if v[0] != v[-1]:
            raise ValueError("Hexagon ring must be closed (first vertex == last).")
        return v

    @property
    def open_ring(self) -> tuple[Coordinate, ...]:
        """The six distinct vertices."""
        return self.ring[:-1]

    @property
    def centroid(self) -> LonLat:
        return polygon_centroid(self.ring)

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        """``(min_lon, min_lat, max_lon, max_lat)``."""
        lons = [p[0] for p in self.ring]
        lats = [p[1] for p in self.ring]
        return min(lons), min(lats), max(lons), max(lats)

    def with_id(self, hex_id: int) -> "Hexagon":
        return self.model_copy(update={"hex_id": hex_id})

    def ring_as_lists(self) -> list[list[float]]:
        """Ring in the ``[[lon, lat], ...]`` shape provider APIs expect."""
        return [[lon, lat] for lon, lat in self.ring]

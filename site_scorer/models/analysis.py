"""
Analysis request and audit models.

``AnalysisRun`` is the only mutable model: its ``status``, ``hexagon_count``,
``error_message`` and ``finished_at`` change while the pipeline executes.
Everything else is frozen.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from site_scorer.models.score import Dimension

VALID_RUN_STATUSES = frozenset({"started", "success", "partial", "failed"})

# Accepted spellings for weight keys coming from older route payloads.
_WEIGHT_ALIASES: dict[str, str] = {
    "poi": "competition",
    "access": "accessibility",
}


class ReferencePoint(BaseModel):
    """Catchment center chosen by the user."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    lat: float
    lon: float

    @field_validator("lat")
    @classmethod
    def validate_lat(cls, v: float) -> float:
        if not math.isfinite(v) or not -90.0 <= v <= 90.0:
            raise ValueError(f"lat must be within [-90, 90], got {v}.")
        return v

    @field_validator("lon")
    @classmethod
    def validate_lon(cls, v: float) -> float:
        if not math.isfinite(v) or not -180.0 <= v <= 180.0:
            raise ValueError(f"lon must be within [-180, 180], got {v}.")
        return v


class DimensionWeights(BaseModel):
    """Weight per dimension. Conceptually sums to 100; not enforced.

    The aggregator divides by the configured total, so any non-negative
    vector with a positive sum is usable.
    """

    model_config = ConfigDict(frozen=True)

    demand: float = 20.0
    competition: float = 20.0
    risk: float = 20.0
    zoning: float = 20.0
    accessibility: float = 20.0

    @field_validator("demand", "competition", "risk", "zoning", "accessibility")
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError(f"Weights must be finite and >= 0, got {v}.")
        return v

    @classmethod
    def from_mapping(
        cls,
        raw: Optional[Mapping[str, Any]],
        defaults: Optional["DimensionWeights"] = None,
    ) -> "DimensionWeights":
        """Build from a partial mapping; missing keys keep ``defaults``."""
        base = (defaults or cls()).model_dump()
        for key, value in (raw or {}).items():
            name = _WEIGHT_ALIASES.get(key.lower(), key.lower())
            if name in base and value is not None:
                base[name] = float(value)
        return cls(**base)

    def get(self, dimension: Dimension) -> float:
        return float(getattr(self, dimension.value))

    @property
    def total(self) -> float:
        return sum(self.get(d) for d in Dimension)


class AnalysisRun(BaseModel):
    """Audit record for one scoring request.

    Attributes:
        analysis_id:     Store-assigned id; ``None`` before insertion.
        run_slug:        UUID4 string identifying the run in logs.
        reference_point: Catchment center.
        category:        Requested business category (raw, pre-fallback).
        resolved_category: Preset actually used after fallback.
        radius_m:        Catchment radius.
        max_hexagons:    Optional cap applied after tessellation.
        weights:         Weight vector used for aggregation.
        status:          One of ``VALID_RUN_STATUSES``.
        hexagon_count:   Hexagons scored.
        error_message:   Accumulated module or structural errors.
    """

    analysis_id: Optional[int] = None
    run_slug: str
    reference_point: ReferencePoint
    category: str
    resolved_category: str = "default"
    radius_m: float
    max_hexagons: Optional[int] = None
    weights: DimensionWeights = Field(default_factory=DimensionWeights)
    status: str = "started"
    hexagon_count: int = 0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_RUN_STATUSES:
            raise ValueError(f"status must be one of {sorted(VALID_RUN_STATUSES)}, got '{v}'.")
        return v

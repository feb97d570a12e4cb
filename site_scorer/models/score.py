"""
Score records flowing from the scorers through aggregation to the store.

``DimensionScore`` is the single result shape every scorer emits per hexagon:
``score`` is ``None`` when the provider could not answer, and that ``None``
survives untouched until aggregation. Only the aggregator turns it into a
zero contribution; the record itself keeps it as ``None``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from site_scorer.models.hexagon import Hexagon, LonLat

MAX_DIMENSION_SCORE = 20.0


class Dimension(StrEnum):
    """The five scoring axes, in canonical order."""

    DEMAND = "demand"
    COMPETITION = "competition"
    RISK = "risk"
    ZONING = "zoning"
    ACCESSIBILITY = "accessibility"


class DimensionScore(BaseModel):
    """One hexagon's result on one dimension.

    Attributes:
        score:    Bounded to [0, 20]; ``None`` means missing, not zero.
        evidence: Raw provider facts behind the score (population, counts,
                  flood area, distances, land-use label, or ``error``).
    """

    model_config = ConfigDict(frozen=True)

    score: Optional[float] = None
    evidence: dict[str, Any] = Field(default_factory=dict)

    @field_validator("score")
    @classmethod
    def validate_score(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        if not 0.0 <= v <= MAX_DIMENSION_SCORE:
            raise ValueError(f"Dimension score must be in [0, 20], got {v}.")
        return v

    @property
    def is_missing(self) -> bool:
        return self.score is None

    @classmethod
    def missing(cls, reason: str, **evidence: Any) -> "DimensionScore":
        return cls(score=None, evidence={"error": reason, **evidence})


class FinalScoreRecord(BaseModel):
    """Aggregated outcome for one hexagon.

    ``scores`` always has all five dimensions as keys; values may be ``None``.
    """

    model_config = ConfigDict(frozen=True)

    hexagon: Hexagon
    centroid: LonLat
    scores: dict[Dimension, Optional[float]]
    evidence: dict[Dimension, dict[str, Any]] = Field(default_factory=dict)
    final_score: float

    @property
    def hex_index(self) -> int:
        return self.hexagon.hex_index

    @property
    def demand_score(self) -> Optional[float]:
        return self.scores.get(Dimension.DEMAND)

    @property
    def competition_score(self) -> Optional[float]:
        return self.scores.get(Dimension.COMPETITION)

    @property
    def risk_score(self) -> Optional[float]:
        return self.scores.get(Dimension.RISK)

    @property
    def zoning_score(self) -> Optional[float]:
        return self.scores.get(Dimension.ZONING)

    @property
    def accessibility_score(self) -> Optional[float]:
        return self.scores.get(Dimension.ACCESSIBILITY)


class RecommendedLocation(BaseModel):
    """A top-N hexagon ready for persistence and display.

    Attributes:
        rank:      1-based position after ranking.
        hex_index: Generation index of the source hexagon.
        hex_id:    Persisted hexagon id, when known.
        lat, lon:  Hexagon centroid.
        score:     Final weighted score (2 dp).
        breakdown: Per-dimension ``{"score": ..., <evidence>...}``.
        reasoning: Short explanation built from the breakdown.
    """

    model_config = ConfigDict(frozen=True)

    rank: int
    hex_index: int
    hex_id: Optional[int] = None
    lat: float
    lon: float
    score: float
    breakdown: dict[str, dict[str, Any]]
    reasoning: str = ""

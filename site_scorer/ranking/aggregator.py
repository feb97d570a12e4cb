"""
Weighted aggregation of per-dimension scores into one score per hexagon.

Formula
-------
    final = sum(score_d_or_0 * weight_d) / sum(weight_d)     over all 5 dimensions

A missing dimension contributes 0 to the numerator while its configured weight
stays in the denominator, so missing data is penalised rather than excluded.
With the default 20/20/20/20/20 weights the result is on the same [0, 20]
scale as each dimension. The result is rounded to 2 dp. A hexagon whose five
dimensions are all missing, or a zero weight total, yields 0.0.

Example: demand missing, competition 15, risk 18, zoning 12, accessibility 10,
all weights 20 → (0 + 300 + 360 + 240 + 200) / 100 = 11.0
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from site_scorer.models.analysis import DimensionWeights
from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import Dimension, DimensionScore, FinalScoreRecord

# Field names a scorer result object may carry its number under, in order.
_SCORE_FIELDS = ("score", "demandScore", "demand_score", "value")


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    return None


def extract_numeric_score(result: Any) -> Optional[float]:
    """Normalise one scorer result to a plain number or ``None``.

    Accepts a raw number, a ``DimensionScore``, a mapping, or any object
    exposing ``score`` / ``demandScore`` / ``demand_score`` / ``value``.
    Fields are tried in that order; a null or non-numeric field falls through
    to the next one. Numeric strings are accepted.
    """
    if isinstance(result, DimensionScore):
        return result.score
    if (number := _as_number(result)) is not None or result is None:
        return number
    if isinstance(result, str):
        return None
    for name in _SCORE_FIELDS:
        if isinstance(result, Mapping):
            value = result.get(name)
        else:
            value = getattr(result, name, None)
        if (number := _as_number(value)) is not None:
            return number
    return None


def _evidence_of(result: Any) -> dict[str, Any]:
    if isinstance(result, DimensionScore):
        return dict(result.evidence)
    if isinstance(result, Mapping):
        evidence = result.get("evidence")
        return dict(evidence) if isinstance(evidence, Mapping) else {}
    return {}


def weighted_final_score(
    scores: Mapping[Dimension, Optional[float]], weights: DimensionWeights
) -> float:
    total_weight = weights.total
    if total_weight <= 0:
        return 0.0
    numerator = sum((scores.get(d) or 0.0) * weights.get(d) for d in Dimension)
    return round(numerator / total_weight, 2)


def aggregate(
    hexagons: Sequence[Hexagon],
    per_dimension_results: Mapping[Dimension, Optional[Sequence[Any]]],
    weights: Optional[DimensionWeights] = None,
) -> list[FinalScoreRecord]:
    """Build one ``FinalScoreRecord`` per hexagon, in hexagon order.

    Args:
        hexagons:              The scored hexagon set.
        per_dimension_results: Result list per dimension, positionally aligned
            with ``hexagons``. A missing key or ``None`` means the dimension
            failed and every hexagon gets ``None`` for it.
        weights:               Weight vector (default 20 each).

    Raises:
        ValueError: If a result list does not match ``len(hexagons)``.
    """
    weights = weights or DimensionWeights()
    for dim, results in per_dimension_results.items():
        if results is not None and len(results) != len(hexagons):
            raise ValueError(
                f"{Dimension(dim).value} returned {len(results)} results "
                f"for {len(hexagons)} hexagons."
            )

    records: list[FinalScoreRecord] = []
    for i, hexagon in enumerate(hexagons):
        scores: dict[Dimension, Optional[float]] = {}
        evidence: dict[Dimension, dict[str, Any]] = {}
        for dim in Dimension:
            results = per_dimension_results.get(dim)
            if results is None:
                scores[dim] = None
                evidence[dim] = {"error": "dimension unavailable"}
                continue
            scores[dim] = extract_numeric_score(results[i])
            evidence[dim] = _evidence_of(results[i])

        records.append(
            FinalScoreRecord(
                hexagon=hexagon,
                centroid=hexagon.centroid,
                scores=scores,
                evidence=evidence,
                final_score=weighted_final_score(scores, weights),
            )
        )
    return records

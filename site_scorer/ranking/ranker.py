"""
Ranking and recommendation building.

Usage flow
----------
1. rank(records)
   -> list[FinalScoreRecord]  sorted by final_score desc, ties by hex_index asc

2. rank_and_select_top(records, n=3)
   -> the first n of rank(records)

3. build_recommendations(top)
   -> list[RecommendedLocation]  with a per-dimension breakdown and reasoning

Ties are broken by generation order (the first-generated hexagon wins) so a
repeated run over identical inputs yields an identical ranking.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from site_scorer.models.score import Dimension, FinalScoreRecord, RecommendedLocation

# Evidence keys surfaced per dimension in the persisted breakdown.
_BREAKDOWN_EVIDENCE: dict[Dimension, tuple[str, ...]] = {
    Dimension.DEMAND:        ("population",),
    Dimension.COMPETITION:   ("count",),
    Dimension.RISK:          ("flood_area_ha", "landslide_count", "has_landslide", "risk_ratio"),
    Dimension.ZONING:        ("landuse",),
    Dimension.ACCESSIBILITY: ("distance_m",),
}


def rank(records: Sequence[FinalScoreRecord]) -> list[FinalScoreRecord]:
    """Stable sort by final score descending, then generation order."""
    return sorted(records, key=lambda r: (-r.final_score, r.hex_index))


def rank_and_select_top(
    records: Sequence[FinalScoreRecord], n: int = 3
) -> list[FinalScoreRecord]:
    """The ``n`` best records (fewer when fewer exist)."""
    if n <= 0:
        return []
    return rank(records)[:n]


def build_breakdown(record: FinalScoreRecord) -> dict[str, dict[str, Any]]:
    """Per-dimension ``{"score": ..., <evidence>...}`` for display and storage."""
    breakdown: dict[str, dict[str, Any]] = {}
    for dim in Dimension:
        evidence = record.evidence.get(dim, {})
        entry: dict[str, Any] = {"score": record.scores.get(dim)}
        for key in _BREAKDOWN_EVIDENCE[dim]:
            entry[key] = evidence.get(key)
        if record.scores.get(dim) is None and evidence.get("error"):
            entry["error"] = evidence["error"]
        breakdown[dim.value] = entry
    return breakdown


def _fmt(score: Optional[float]) -> str:
    return "n/a" if score is None else f"{score:.1f}/20"


def build_reasoning(record: FinalScoreRecord) -> str:
    """Assemble a short semicolon-separated explanation of a record's score.

    Example::

        "Strongest: risk 20.0/20, zoning 18.0/20; Weakest: competition 5.0/20;
         Missing data: demand"
    """
    present = [(d, s) for d, s in record.scores.items() if s is not None]
    missing = [d.value for d, s in record.scores.items() if s is None]
    reasons: list[str] = []

    if present:
        ordered = sorted(present, key=lambda ds: (-ds[1], list(Dimension).index(ds[0])))
        top = [f"{d.value} {_fmt(s)}" for d, s in ordered[:2]]
        reasons.append("Strongest: " + ", ".join(top))
        weakest_dim, weakest = ordered[-1]
        if len(ordered) > 2 and weakest < 10.0:
            reasons.append(f"Weakest: {weakest_dim.value} {_fmt(weakest)}")

    zoning_label = record.evidence.get(Dimension.ZONING, {}).get("landuse")
    if zoning_label:
        reasons.append(f"Land use: {zoning_label}")

    distance = record.evidence.get(Dimension.ACCESSIBILITY, {}).get("distance_m")
    if distance is not None:
        reasons.append(f"Nearest facility ~{distance:.0f} m")

    if missing:
        reasons.append("Missing data: " + ", ".join(missing))

    return "; ".join(reasons) if reasons else "No dimension data available"


def build_recommendations(top: Sequence[FinalScoreRecord]) -> list[RecommendedLocation]:
    """Turn ranked records into ``RecommendedLocation`` rows (rank is 1-based)."""
    return [
        RecommendedLocation(
            rank=i,
            hex_index=record.hex_index,
            hex_id=record.hexagon.hex_id,
            lat=record.centroid.lat,
            lon=record.centroid.lon,
            score=round(record.final_score, 2),
            breakdown=build_breakdown(record),
            reasoning=build_reasoning(record),
        )
        for i, record in enumerate(top, start=1)
    ]

"""
Export helpers for GIS tools and spreadsheets.

Every writer creates parent directories, writes UTF-8 and returns the
``Path`` it wrote.

``flatten_score_records()`` turns each ``FinalScoreRecord`` into one flat row
(no nested dicts) so the CSV loads directly in QGIS or Excel; missing
dimensions are written as empty cells, not 0.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from site_scorer.models.analysis import AnalysisRun
from site_scorer.models.score import Dimension, FinalScoreRecord, RecommendedLocation

SCORE_COLUMNS: list[str] = [
    "rank",
    "hex_index",
    "hex_id",
    "centroid_lat",
    "centroid_lon",
    *[f"{d.value}_score" for d in Dimension],
    "final_score",
]


def export_to_csv(
    records: list[dict],
    path: Path,
    fieldnames: list[str] | None = None,
) -> Path:
    """Write row dicts to CSV; an empty ``records`` writes an empty file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if not records:
        path.write_text("", encoding="utf-8")
        return path
    cols = fieldnames or list(records[0].keys())
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=cols, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(records)
    return path


def export_to_json(data: dict | list, path: Path) -> Path:
    """Write ``data`` as pretty-printed JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    return path


def flatten_score_records(ranked: Sequence[FinalScoreRecord]) -> list[dict]:
    """One flat row per record; ``rank`` follows the input order (1-based)."""
    rows: list[dict] = []
    for i, record in enumerate(ranked, start=1):
        row: dict = {
            "rank":         i,
            "hex_index":    record.hex_index,
            "hex_id":       record.hexagon.hex_id if record.hexagon.hex_id is not None else "",
            "centroid_lat": round(record.centroid.lat, 6),
            "centroid_lon": round(record.centroid.lon, 6),
            "final_score":  record.final_score,
        }
        for dim in Dimension:
            score = record.scores.get(dim)
            row[f"{dim.value}_score"] = "" if score is None else score
        rows.append(row)
    return rows


def write_scores_csv(ranked: Sequence[FinalScoreRecord], path: Path) -> Path:
    """Write every scored hexagon, best first, to ``path``."""
    return export_to_csv(flatten_score_records(ranked), path, fieldnames=SCORE_COLUMNS)


def write_recommendations_json(
    recommendations: Sequence[RecommendedLocation],
    path: Path,
    run: Optional[AnalysisRun] = None,
) -> Path:
    """Write the top-N with run metadata to ``path``.

    Shape::

        {"run_slug": ..., "analysis_id": ..., "category": ..., "generated_at": ...,
         "reference_point": {...}, "radius_m": ..., "weights": {...},
         "status": ..., "recommendations": [{rank, hex_index, lat, lon, score,
                                             breakdown, reasoning}, ...]}
    """
    payload: dict = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "recommendations": [rec.model_dump() for rec in recommendations],
    }
    if run is not None:
        payload.update(
            {
                "run_slug":        run.run_slug,
                "analysis_id":     run.analysis_id,
                "category":        run.resolved_category,
                "reference_point": run.reference_point.model_dump(),
                "radius_m":        run.radius_m,
                "weights":         run.weights.model_dump(),
                "status":          run.status,
            }
        )
    return export_to_json(payload, path)

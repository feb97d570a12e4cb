"""
Repository for ``recommended_locations``: the persisted top-N of a run.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Sequence

from site_scorer.db.repositories.base import BaseRepository
from site_scorer.models.score import RecommendedLocation


class RecommendationRepository(BaseRepository):
    """Read/write access to ``recommended_locations``."""

    def replace_for_analysis(
        self, analysis_id: int, recommendations: Sequence[RecommendedLocation]
    ) -> int:
        """Replace the stored top-N of ``analysis_id``; returns rows written."""
        self.execute(
            "DELETE FROM recommended_locations WHERE analysis_id = ?;", (analysis_id,)
        )
        self.executemany(
            """
            INSERT INTO recommended_locations (
                analysis_id, hex_id, hex_index, rank, lat, lon,
                score, breakdown, reasoning
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            [
                (
                    analysis_id,
                    rec.hex_id,
                    rec.hex_index,
                    rec.rank,
                    rec.lat,
                    rec.lon,
                    rec.score,
                    json.dumps(rec.breakdown, default=str),
                    rec.reasoning,
                )
                for rec in recommendations
            ],
        )
        return len(recommendations)

    def get_for_analysis(self, analysis_id: int) -> list[RecommendedLocation]:
        rows = self.fetchall(
            "SELECT * FROM recommended_locations WHERE analysis_id = ? ORDER BY rank;",
            (analysis_id,),
        )
        return [_row_to_recommendation(r) for r in rows]


def _row_to_recommendation(row: sqlite3.Row) -> RecommendedLocation:
    return RecommendedLocation(
        rank=row["rank"],
        hex_index=row["hex_index"],
        hex_id=row["hex_id"],
        lat=row["lat"],
        lon=row["lon"],
        score=row["score"],
        breakdown=json.loads(row["breakdown"]),
        reasoning=row["reasoning"],
    )

"""
Repository for ``hexagons`` and ``hexagon_scores``.

Scores are stored one row per hexagon with a nullable column per dimension;
the per-dimension evidence is kept as one JSON document keyed by dimension.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Sequence

from site_scorer.db.repositories.base import BaseRepository
from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import Dimension, FinalScoreRecord


class HexagonRepository(BaseRepository):
    """Read/write access to ``hexagons`` and ``hexagon_scores``."""

    def insert_hexagon(self, hexagon: Hexagon, analysis_id: int) -> int:
        """Insert one hexagon and return its ``hex_id``."""
        centroid = hexagon.centroid
        self.execute(
            """
            INSERT INTO hexagons (analysis_id, hex_index, centroid_lat, centroid_lon, ring)
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                analysis_id,
                hexagon.hex_index,
                centroid.lat,
                centroid.lon,
                json.dumps(hexagon.ring_as_lists()),
            ),
        )
        return self.last_insert_rowid()

    def upsert_scores(self, rows: Sequence[tuple[int, FinalScoreRecord]]) -> int:
        """Write ``(hex_id, record)`` pairs; re-scoring a hexagon replaces its row.

        Returns:
            Number of rows written.
        """
        params: list[tuple[Any, ...]] = [
            (
                hex_id,
                record.demand_score,
                record.competition_score,
                record.risk_score,
                record.zoning_score,
                record.accessibility_score,
                record.final_score,
                json.dumps(
                    {d.value: record.evidence.get(d, {}) for d in Dimension}, default=str
                ),
            )
            for hex_id, record in rows
        ]
        self.executemany(
            """
            INSERT INTO hexagon_scores (
                hex_id, demand_score, competition_score, risk_score,
                zoning_score, accessibility_score, final_score, evidence
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (hex_id) DO UPDATE SET
                demand_score        = excluded.demand_score,
                competition_score   = excluded.competition_score,
                risk_score          = excluded.risk_score,
                zoning_score        = excluded.zoning_score,
                accessibility_score = excluded.accessibility_score,
                final_score         = excluded.final_score,
                evidence            = excluded.evidence;
            """,
            params,
        )
        return len(params)

    def get_scores(self, analysis_id: int) -> list[FinalScoreRecord]:
        """Scored hexagons of one analysis, in generation order."""
        rows = self.fetchall(
            """
            SELECT h.*, s.demand_score, s.competition_score, s.risk_score,
                   s.zoning_score, s.accessibility_score, s.final_score, s.evidence
            FROM hexagons h
            JOIN hexagon_scores s ON s.hex_id = h.hex_id
            WHERE h.analysis_id = ?
            ORDER BY h.hex_index;
            """,
            (analysis_id,),
        )
        return [_row_to_record(r) for r in rows]


def _row_to_hexagon(row: sqlite3.Row) -> Hexagon:
    return Hexagon(
        hex_index=row["hex_index"],
        hex_id=row["hex_id"],
        ring=tuple(tuple(p) for p in json.loads(row["ring"])),
    )


def _row_to_record(row: sqlite3.Row) -> FinalScoreRecord:
    hexagon = _row_to_hexagon(row)
    return FinalScoreRecord(
        hexagon=hexagon,
        centroid=hexagon.centroid,
        scores={d: row[f"{d.value}_score"] for d in Dimension},
        evidence=json.loads(row["evidence"]),
        final_score=row["final_score"],
    )

"""
Repository for ``analyses``: the audit record of each scoring request.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from site_scorer.db.repositories.base import BaseRepository
from site_scorer.models.analysis import AnalysisRun, DimensionWeights, ReferencePoint


class AnalysisRepository(BaseRepository):
    """Read/write access to ``analyses``."""

    def insert_analysis(self, run: AnalysisRun) -> int:
        """Insert a run record and return its ``analysis_id``."""
        started = run.started_at or datetime.now(timezone.utc)
        self.execute(
            """
            INSERT INTO analyses (
                run_slug, reference_name, center_lat, center_lon, radius_m,
                category, resolved_category, max_hexagons, weights, status,
                hexagon_count, error_message, started_at, finished_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                run.run_slug,
                run.reference_point.name,
                run.reference_point.lat,
                run.reference_point.lon,
                run.radius_m,
                run.category,
                run.resolved_category,
                run.max_hexagons,
                json.dumps(run.weights.model_dump()),
                run.status,
                run.hexagon_count,
                run.error_message,
                started.isoformat(),
                run.finished_at.isoformat() if run.finished_at else None,
            ),
        )
        return self.last_insert_rowid()

    def update_analysis(self, run: AnalysisRun) -> None:
        """Update the mutable fields of an existing run.

        Raises:
            ValueError: If ``run.analysis_id`` is ``None``.
        """
        if run.analysis_id is None:
            raise ValueError("Cannot update AnalysisRun without an analysis_id.")
        self.execute(
            """
            UPDATE analyses SET
                resolved_category = ?,
                status            = ?,
                hexagon_count     = ?,
                error_message     = ?,
                finished_at       = ?
            WHERE analysis_id = ?;
            """,
            (
                run.resolved_category,
                run.status,
                run.hexagon_count,
                run.error_message,
                run.finished_at.isoformat() if run.finished_at else None,
                run.analysis_id,
            ),
        )

    def get_analysis(self, analysis_id: int) -> Optional[AnalysisRun]:
        row = self.fetchone(
            "SELECT * FROM analyses WHERE analysis_id = ?;", (analysis_id,)
        )
        return _row_to_run(row) if row else None

    def get_recent_analyses(self, limit: int = 20) -> list[AnalysisRun]:
        """Most recent runs first."""
        rows = self.fetchall(
            "SELECT * FROM analyses ORDER BY analysis_id DESC LIMIT ?;", (limit,)
        )
        return [_row_to_run(r) for r in rows]


def _row_to_run(row: sqlite3.Row) -> AnalysisRun:
    return AnalysisRun(
        analysis_id=row["analysis_id"],
        run_slug=row["run_slug"],
        reference_point=ReferencePoint(
            name=row["reference_name"], lat=row["center_lat"], lon=row["center_lon"]
        ),
        category=row["category"],
        resolved_category=row["resolved_category"],
        radius_m=row["radius_m"],
        max_hexagons=row["max_hexagons"],
        weights=DimensionWeights(**json.loads(row["weights"])),
        status=row["status"],
        hexagon_count=row["hexagon_count"],
        error_message=row["error_message"],
        started_at=datetime.fromisoformat(row["started_at"]),
        finished_at=(
            datetime.fromisoformat(row["finished_at"]) if row["finished_at"] else None
        ),
    )

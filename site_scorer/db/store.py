"""
Result store: persistence boundary of the scoring pipeline.

``ResultStore`` is the protocol the pipeline depends on; ``SQLiteResultStore``
implements it over the explicit-SQL repositories. Any object with the same
methods (an in-memory fake in tests, a Postgres adapter elsewhere) can be
injected into ``AnalysisPipeline`` instead.

Connection handling
-------------------
- ``SQLiteResultStore(conn=...)`` reuses a caller-owned connection and
  commits after every write (tests pass an in-memory connection).
- ``SQLiteResultStore(db_path=...)`` opens a short-lived connection through
  ``get_connection()`` for each call.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional, Protocol, Sequence, runtime_checkable

from site_scorer.db.connection import configure_connection, get_connection
from site_scorer.db.repositories.analysis_repo import AnalysisRepository
from site_scorer.db.repositories.hexagon_repo import HexagonRepository
from site_scorer.db.repositories.recommendation_repo import RecommendationRepository
from site_scorer.db.schema import apply_schema
from site_scorer.models.analysis import AnalysisRun
from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import FinalScoreRecord, RecommendedLocation

logger = logging.getLogger(__name__)


@runtime_checkable
class ResultStore(Protocol):
    def save_analysis(self, run: AnalysisRun) -> int: ...

    def update_analysis(self, run: AnalysisRun) -> None: ...

    def save_hexagon(self, hexagon: Hexagon, index: int, analysis_id: int) -> int: ...

    def save_dimension_scores(
        self, hexagons: Sequence[Hexagon], records: Sequence[FinalScoreRecord]
    ) -> int: ...

    def save_top_recommendations(
        self, analysis_id: int, recommendations: Sequence[RecommendedLocation]
    ) -> int: ...

    def get_hexagon_scores(self, analysis_id: int) -> list[FinalScoreRecord]: ...

    def get_recommendations(self, analysis_id: int) -> list[RecommendedLocation]: ...


class SQLiteResultStore:
    """``ResultStore`` backed by SQLite.

    Args:
        db_path:       Database file used when ``conn`` is not given.
        conn:          Caller-owned connection to reuse.
        wal_mode:      Forwarded to ``get_connection()``.
        ensure_schema: Apply the schema on construction.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
        wal_mode: bool = True,
        ensure_schema: bool = True,
    ) -> None:
        if conn is None and db_path is None:
            raise ValueError("SQLiteResultStore needs either db_path or conn.")
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._conn = conn
        if conn is not None and conn.row_factory is not sqlite3.Row:
            configure_connection(conn, wal_mode=False)
        if ensure_schema:
            with self._session() as session:
                apply_schema(session)

    @contextmanager
    def _session(self) -> Generator[sqlite3.Connection, None, None]:
        if self._conn is not None:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            return
        with get_connection(self.db_path, wal_mode=self.wal_mode) as conn:
            yield conn

    # ── Writes ────────────────────────────────────────────────────────────────

    def save_analysis(self, run: AnalysisRun) -> int:
        """Insert ``run`` and set its ``analysis_id``."""
        with self._session() as conn:
            analysis_id = AnalysisRepository(conn).insert_analysis(run)
        run.analysis_id = analysis_id
        logger.debug("Saved analysis %d (%s)", analysis_id, run.run_slug)
        return analysis_id

    def update_analysis(self, run: AnalysisRun) -> None:
        with self._session() as conn:
            AnalysisRepository(conn).update_analysis(run)

    def save_hexagon(self, hexagon: Hexagon, index: int, analysis_id: int) -> int:
        """Persist one hexagon under ``analysis_id`` at position ``index``."""
        if hexagon.hex_index != index:
            hexagon = hexagon.model_copy(update={"hex_index": index})
        with self._session() as conn:
            return HexagonRepository(conn).insert_hexagon(hexagon, analysis_id)

    def save_dimension_scores(
        self, hexagons: Sequence[Hexagon], records: Sequence[FinalScoreRecord]
    ) -> int:
        """Persist one score row per record.

        Each record is matched to its persisted hexagon by ``hex_index``.

        Raises:
            ValueError: If a record's hexagon has no persisted id.
        """
        ids = {h.hex_index: h.hex_id for h in hexagons if h.hex_id is not None}
        rows: list[tuple[int, FinalScoreRecord]] = []
        for record in records:
            hex_id = record.hexagon.hex_id or ids.get(record.hex_index)
            if hex_id is None:
                raise ValueError(f"Hexagon {record.hex_index} has not been saved.")
            rows.append((hex_id, record))
        with self._session() as conn:
            return HexagonRepository(conn).upsert_scores(rows)

    def save_top_recommendations(
        self, analysis_id: int, recommendations: Sequence[RecommendedLocation]
    ) -> int:
        with self._session() as conn:
            return RecommendationRepository(conn).replace_for_analysis(
                analysis_id, recommendations
            )

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_analysis(self, analysis_id: int) -> Optional[AnalysisRun]:
        with self._session() as conn:
            return AnalysisRepository(conn).get_analysis(analysis_id)

    def get_recent_analyses(self, limit: int = 20) -> list[AnalysisRun]:
        with self._session() as conn:
            return AnalysisRepository(conn).get_recent_analyses(limit)

    def get_hexagon_scores(self, analysis_id: int) -> list[FinalScoreRecord]:
        with self._session() as conn:
            return HexagonRepository(conn).get_scores(analysis_id)

    def get_recommendations(self, analysis_id: int) -> list[RecommendedLocation]:
        with self._session() as conn:
            return RecommendationRepository(conn).get_for_analysis(analysis_id)

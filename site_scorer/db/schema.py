"""
SQLite schema DDL for scoring results.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is idempotent.

Table creation order respects foreign key dependencies:
  1. analyses               (no FKs)
  2. hexagons               (→ analyses)
  3. hexagon_scores         (→ hexagons)
  4. recommended_locations  (→ analyses, hexagons)

Per-dimension scores are nullable: ``NULL`` means the dimension's data was
unavailable for that hexagon, which is different from a genuine 0.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_ANALYSES = """
CREATE TABLE IF NOT EXISTS analyses (
    analysis_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug           TEXT    NOT NULL UNIQUE,
    reference_name     TEXT    NOT NULL DEFAULT '',
    center_lat         REAL    NOT NULL,
    center_lon         REAL    NOT NULL,
    radius_m           REAL    NOT NULL CHECK (radius_m > 0),
    category           TEXT    NOT NULL,
    resolved_category  TEXT    NOT NULL,
    max_hexagons       INTEGER,
    weights            TEXT    NOT NULL,
    status             TEXT    NOT NULL DEFAULT 'started'
                       CHECK (status IN ('started', 'success', 'partial', 'failed')),
    hexagon_count      INTEGER NOT NULL DEFAULT 0,
    error_message      TEXT,
    started_at         TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    finished_at        TEXT
);
"""

_DDL_HEXAGONS = """
CREATE TABLE IF NOT EXISTS hexagons (
    hex_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    analysis_id   INTEGER NOT NULL REFERENCES analyses(analysis_id) ON DELETE CASCADE,
    hex_index     INTEGER NOT NULL,
    centroid_lat  REAL    NOT NULL,
    centroid_lon  REAL    NOT NULL,
    ring          TEXT    NOT NULL,
    UNIQUE (analysis_id, hex_index)
);
CREATE INDEX IF NOT EXISTS idx_hexagons_analysis ON hexagons (analysis_id);
"""

_DDL_HEXAGON_SCORES = """
CREATE TABLE IF NOT EXISTS hexagon_scores (
    hex_id               INTEGER PRIMARY KEY REFERENCES hexagons(hex_id) ON DELETE CASCADE,
    demand_score         REAL,
    competition_score    REAL,
    risk_score           REAL,
    zoning_score         REAL,
    accessibility_score  REAL,
    final_score          REAL    NOT NULL,
    evidence             TEXT    NOT NULL DEFAULT '{}',
    scored_at            TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_RECOMMENDED_LOCATIONS = """
CREATE TABLE IF NOT EXISTS recommended_locations (
    rec_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    analysis_id  INTEGER NOT NULL REFERENCES analyses(analysis_id) ON DELETE CASCADE,
    hex_id       INTEGER REFERENCES hexagons(hex_id),
    hex_index    INTEGER NOT NULL,
    rank         INTEGER NOT NULL CHECK (rank >= 1),
    lat          REAL    NOT NULL,
    lon          REAL    NOT NULL,
    score        REAL    NOT NULL,
    breakdown    TEXT    NOT NULL,
    reasoning    TEXT    NOT NULL DEFAULT '',
    UNIQUE (analysis_id, rank)
);
CREATE INDEX IF NOT EXISTS idx_recommended_analysis ON recommended_locations (analysis_id);
"""

_ALL_DDL: list[str] = [
    _DDL_ANALYSES,
    _DDL_HEXAGONS,
    _DDL_HEXAGON_SCORES,
    _DDL_RECOMMENDED_LOCATIONS,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "analyses",
    "hexagons",
    "hexagon_scores",
    "recommended_locations",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``. Safe to call repeatedly."""
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Table names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row[0] for row in rows]

"""
SQLite connection management for the result store.

``get_connection()`` yields a connection that:
  - Enforces foreign keys (hexagon scores cascade from their analysis).
  - Uses WAL journaling so a dashboard can read while a run writes.
  - Waits on a busy timeout instead of failing on lock contention.
  - Uses ``sqlite3.Row`` so rows behave like dicts.
  - Commits on clean exit, rolls back on exception.

Usage::

    from site_scorer.db.connection import get_connection

    with get_connection("data/db/site_scorer.db") as conn:
        apply_schema(conn)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)


def configure_connection(
    conn: sqlite3.Connection,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> sqlite3.Connection:
    """Apply the row factory and pragmas to an already-open connection."""
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
    if wal_mode:
        conn.execute("PRAGMA journal_mode = WAL;")
    return conn


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    Parent directories of ``db_path`` are created when missing.

    Args:
        db_path: SQLite file path, or ``":memory:"``.
        wal_mode: Enable WAL journal mode.
        busy_timeout_ms: Milliseconds to wait on a locked database.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened or is locked.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    try:
        configure_connection(conn, wal_mode=wal_mode and db_path != ":memory:",
                             busy_timeout_ms=busy_timeout_ms)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

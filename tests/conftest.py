"""
Shared pytest fixtures for the site scorer test suite.

Provides:
  - ``in_memory_db``: a fresh in-memory SQLite connection with the schema applied.
  - ``sample_hexagons``: a small deterministic tessellation around Kuala Lumpur.
  - ``FakeScorer`` / ``fake_scorers``: scorers that return canned values
    without touching the network.
  - ``mock_client()``: an ``httpx.AsyncClient`` wired to a ``MockTransport``.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Callable, Generator, Optional, Sequence

import httpx
import pytest

from site_scorer.config import AppConfig, ScoringConfig
from site_scorer.db.schema import apply_schema
from site_scorer.geometry.hexgrid import generate_hexagons
from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import Dimension, DimensionScore
from site_scorer.scoring.base import DimensionScorer
from site_scorer.scoring.options import DemandOptions, DimensionOptions

KL_LON = 101.7116
KL_LAT = 3.1579


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Fresh in-memory SQLite connection, FK enforcement ON, schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


# ── Geometry fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def sample_hexagons() -> list[Hexagon]:
    """Tessellation of a 300 m disc with 150 m cells."""
    return generate_hexagons(KL_LON, KL_LAT, 300.0, 150.0)


# ── Fake scorers ──────────────────────────────────────────────────────────────

class FakeScorer(DimensionScorer):
    """Returns ``value`` (or ``value(hexagon)``) for every hexagon, no I/O."""

    def __init__(
        self,
        dimension: Dimension,
        value: Optional[float] | Callable[[Hexagon], Optional[float]] = 10.0,
        requires_token: bool = False,
    ) -> None:
        self.dimension = dimension  # type: ignore[misc]
        self.requires_token = requires_token  # type: ignore[misc]
        self.value = value
        self.calls = 0

    async def _score_hexagon(self, hexagon, token, options) -> DimensionScore:
        self.calls += 1
        value = self.value(hexagon) if callable(self.value) else self.value
        return DimensionScore(score=value, evidence={"fake": True})


class FailingScorer(DimensionScorer):
    """Raises from ``score()`` as a whole-module failure."""

    def __init__(self, dimension: Dimension, exc: Exception | None = None) -> None:
        self.dimension = dimension  # type: ignore[misc]
        self.exc = exc or RuntimeError("module exploded")

    async def score(self, hexagons, token, options):
        raise self.exc

    async def _score_hexagon(self, hexagon, token, options):  # pragma: no cover
        raise AssertionError("not reached")


def make_fake_scorers(
    values: Optional[dict[Dimension, Any]] = None,
) -> dict[Dimension, DimensionScorer]:
    values = values or {}
    return {d: FakeScorer(d, values.get(d, 10.0)) for d in Dimension}


@pytest.fixture
def fake_scorers() -> dict[Dimension, DimensionScorer]:
    """All five dimensions scoring a flat 10."""
    return make_fake_scorers()


@pytest.fixture
def fast_options() -> DimensionOptions:
    """Scorer options with every inter-hexagon delay disabled."""
    from site_scorer.scoring.options import (
        AccessibilityOptions,
        CompetitionOptions,
        RiskOptions,
        ZoningOptions,
    )

    return DimensionOptions(
        demand=DemandOptions(radius_m=1000.0, delay_s=0.0),
        competition=CompetitionOptions(delay_s=0.0),
        risk=RiskOptions(delay_s=0.0),
        zoning=ZoningOptions(delay_s=0.0),
        accessibility=AccessibilityOptions(delay_s=0.0),
    )


@pytest.fixture
def test_config() -> AppConfig:
    """Default config with no pacing delays and a short deadline."""
    return AppConfig(
        scoring=ScoringConfig(inter_request_delay_s=0.0, run_deadline_s=5.0),
    )


# ── HTTP helpers ──────────────────────────────────────────────────────────────

def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """``httpx.AsyncClient`` answering every request through ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def hexagon_ids(hexagons: Sequence[Hexagon]) -> list[int]:
    return [h.hex_index for h in hexagons]

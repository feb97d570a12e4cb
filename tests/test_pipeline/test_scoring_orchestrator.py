"""
Tests for site_scorer/pipeline/orchestrator.py.

What we test
------------
ScoringOrchestrator:
  - Settle-all: every scorer runs once; all five dimensions populated.
  - One module raising → that dimension None for every hexagon, the other
    four intact, status "partial".
  - A scorer returning the wrong number of results is a module failure.
  - A scorer still running at the deadline is cancelled and recorded as
    "deadline exceeded" while the fast ones keep their results.
  - A dimension with no scorer configured is a failed module.
  - Every module failing → status "failed", all final scores 0.
run_all_scoring():
  - Synchronous wrapper returns records in hexagon order.
"""

from __future__ import annotations

import asyncio

from conftest import FailingScorer, FakeScorer, make_fake_scorers

from site_scorer.config import AppConfig, ScoringConfig
from site_scorer.models.score import Dimension, DimensionScore
from site_scorer.pipeline.orchestrator import (
    DEADLINE_EXCEEDED,
    ScoringOrchestrator,
    run_all_scoring,
)
from site_scorer.scoring.base import DimensionScorer

D = Dimension


class SlowScorer(DimensionScorer):
    """Sleeps far longer than any test deadline."""

    def __init__(self, dimension: Dimension, delay_s: float = 30.0) -> None:
        self.dimension = dimension  # type: ignore[misc]
        self.delay_s = delay_s
        self.cancelled = False

    async def score(self, hexagons, token, options):
        try:
            await asyncio.sleep(self.delay_s)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return [DimensionScore(score=20.0) for _ in hexagons]

    async def _score_hexagon(self, hexagon, token, options):  # pragma: no cover
        raise AssertionError("not reached")


class ShortScorer(DimensionScorer):
    """Drops the last hexagon's result."""

    def __init__(self, dimension: Dimension) -> None:
        self.dimension = dimension  # type: ignore[misc]

    async def score(self, hexagons, token, options):
        return [DimensionScore(score=5.0) for _ in list(hexagons)[:-1]]

    async def _score_hexagon(self, hexagon, token, options):  # pragma: no cover
        raise AssertionError("not reached")


def _run(orchestrator, hexagons, options, token="tok"):
    return asyncio.run(orchestrator.run(hexagons, token, None, options))


class TestSettleAll:
    def test_all_modules_succeed(self, sample_hexagons, fake_scorers, fast_options):
        result = _run(ScoringOrchestrator(fake_scorers, 5.0), sample_hexagons, fast_options)
        assert result.status == "success"
        assert result.errors == []
        assert len(result.records) == len(sample_hexagons)
        for scorer in fake_scorers.values():
            assert scorer.calls == len(sample_hexagons)
        for record in result.records:
            assert all(record.scores[d] == 10.0 for d in D)
            assert record.final_score == 10.0

    def test_records_in_hexagon_order(self, sample_hexagons, fake_scorers, fast_options):
        result = _run(ScoringOrchestrator(fake_scorers), sample_hexagons, fast_options)
        assert [r.hex_index for r in result.records] == [h.hex_index for h in sample_hexagons]

    def test_token_passed_through(self, sample_hexagons, fast_options):
        seen = []

        class TokenSpy(FakeScorer):
            async def _score_hexagon(self, hexagon, token, options):
                seen.append(token)
                return DimensionScore(score=1.0)

        scorers = make_fake_scorers()
        scorers[D.DEMAND] = TokenSpy(D.DEMAND)
        _run(ScoringOrchestrator(scorers), sample_hexagons[:2], fast_options, token="abc")
        assert seen == ["abc", "abc"]


class TestFailureIsolation:
    def test_one_module_raises(self, sample_hexagons, fast_options):
        scorers = make_fake_scorers()
        scorers[D.RISK] = FailingScorer(D.RISK, RuntimeError("flood service down"))
        result = _run(ScoringOrchestrator(scorers), sample_hexagons, fast_options)

        assert result.status == "partial"
        assert result.failed_dimensions == [D.RISK]
        assert result.errors == ["risk: flood service down"]
        assert result.outcomes[D.RISK].error == "flood service down"
        for record in result.records:
            assert record.risk_score is None
            assert record.demand_score == 10.0
            assert record.accessibility_score == 10.0
            assert record.final_score == 8.0

    def test_wrong_length_is_module_failure(self, sample_hexagons, fast_options):
        scorers = make_fake_scorers()
        scorers[D.ZONING] = ShortScorer(D.ZONING)
        result = _run(ScoringOrchestrator(scorers), sample_hexagons, fast_options)
        assert not result.outcomes[D.ZONING].ok
        assert "results for" in result.outcomes[D.ZONING].error
        assert all(r.zoning_score is None for r in result.records)

    def test_missing_scorer(self, sample_hexagons, fast_options):
        scorers = make_fake_scorers()
        del scorers[D.ACCESSIBILITY]
        result = _run(ScoringOrchestrator(scorers), sample_hexagons, fast_options)
        assert result.outcomes[D.ACCESSIBILITY].error == "no scorer configured"
        assert result.status == "partial"

    def test_all_modules_fail(self, sample_hexagons, fast_options):
        scorers = {d: FailingScorer(d) for d in D}
        result = _run(ScoringOrchestrator(scorers), sample_hexagons, fast_options)
        assert result.status == "failed"
        assert len(result.errors) == 5
        assert all(r.final_score == 0.0 for r in result.records)
        assert all(v is None for r in result.records for v in r.scores.values())


class TestDeadline:
    def test_slow_module_cancelled(self, sample_hexagons, fast_options):
        slow = SlowScorer(D.DEMAND)
        scorers = make_fake_scorers()
        scorers[D.DEMAND] = slow
        result = _run(ScoringOrchestrator(scorers, deadline_s=0.2), sample_hexagons, fast_options)

        assert slow.cancelled
        assert result.outcomes[D.DEMAND].error == DEADLINE_EXCEEDED
        assert result.status == "partial"
        for record in result.records:
            assert record.demand_score is None
            assert record.competition_score == 10.0

    def test_no_deadline_waits(self, sample_hexagons, fast_options):
        scorers = make_fake_scorers()
        scorers[D.DEMAND] = SlowScorer(D.DEMAND, delay_s=0.05)
        result = _run(ScoringOrchestrator(scorers, deadline_s=None), sample_hexagons, fast_options)
        assert result.status == "success"
        assert all(r.demand_score == 20.0 for r in result.records)


class TestRunAllScoring:
    def test_sync_wrapper(self, sample_hexagons, fast_options):
        scorers = make_fake_scorers({D.DEMAND: 20.0, D.RISK: None})
        config = AppConfig(scoring=ScoringConfig(run_deadline_s=5.0))
        records = run_all_scoring(
            sample_hexagons, "tok", None, fast_options, scorers=scorers, config=config
        )
        assert [r.hex_index for r in records] == [h.hex_index for h in sample_hexagons]
        assert all(r.demand_score == 20.0 for r in records)
        assert all(r.risk_score is None for r in records)
        assert all(r.final_score == 10.0 for r in records)

"""
Tests for site_scorer/pipeline/analysis.py.

All tests inject fake scorers, a static token provider and an in-memory
SQLite store; no network access.

What we test
------------
Happy path:
  - The run is persisted with status "success", hexagon count and the
    resolved category; hexagons, scores and top-3 recommendations land in
    the store and match the returned result.
Degraded runs:
  - One module failing → status "partial", error recorded on the run.
  - No token → token-dependent scorers report missing for every hexagon.
Input validation (AnalysisInputError, nothing persisted):
  - radius above the 10 km limit, zero or negative radius.
  - latitude out of range, bad weights, non-positive cap.
Caps and weights:
  - max_hexagons truncates the tessellation in generation order.
  - Weight overrides reach the stored run.
  - Scorers pace with the category's request delay unless the config
    overrides it.
Structural failure:
  - A store error mid-run marks the run "failed" and raises AnalysisError.
"""

from __future__ import annotations

import pytest
from conftest import KL_LAT, KL_LON, FailingScorer, FakeScorer, make_fake_scorers

from site_scorer.config import AppConfig, ScoringConfig
from site_scorer.db.store import SQLiteResultStore
from site_scorer.models.analysis import ReferencePoint
from site_scorer.models.score import Dimension, DimensionScore
from site_scorer.pipeline.analysis import AnalysisError, AnalysisInputError, AnalysisPipeline
from site_scorer.providers.auth import StaticTokenProvider
from site_scorer.ranking.ranker import rank
from site_scorer.taxonomy.categories import get_category_settings

D = Dimension
KLCC = ReferencePoint(name="KLCC", lat=KL_LAT, lon=KL_LON)


def _pipeline(config, store, scorers=None, token="tok") -> AnalysisPipeline:
    return AnalysisPipeline(
        config,
        store,
        token_provider=StaticTokenProvider(token),
        scorers=scorers or make_fake_scorers(),
    )


def _varied_scorers():
    return make_fake_scorers({d: (lambda h: float(h.hex_index % 20)) for d in D})


class OptionsRecorder(FakeScorer):
    """Records the options it was handed and skips the per-hexagon loop."""

    def __init__(self, dimension):
        super().__init__(dimension)
        self.seen = None

    async def score(self, hexagons, token, options):
        self.seen = options
        return [DimensionScore(score=10.0) for _ in hexagons]


class BrokenStore(SQLiteResultStore):
    def save_dimension_scores(self, hexagons, records):
        raise RuntimeError("disk full")


class TestHappyPath:
    def test_run_persisted(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        result = _pipeline(test_config, store, _varied_scorers()).run(
            KLCC, radius_m=500, category="Retail"
        )

        assert result.status == "success"
        assert result.module_errors == {}
        run = store.get_analysis(result.run.analysis_id)
        assert run.status == "success"
        assert run.resolved_category == "retail"
        assert run.category == "Retail"
        assert run.hexagon_count == len(result.hexagons) > 3
        assert run.finished_at is not None

    def test_hexagons_and_scores_stored(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        result = _pipeline(test_config, store, _varied_scorers()).run(
            KLCC, radius_m=500, category="retail"
        )
        assert all(h.hex_id is not None for h in result.hexagons)
        stored = store.get_hexagon_scores(result.run.analysis_id)
        assert [r.hex_index for r in stored] == [r.hex_index for r in result.records]
        assert [r.final_score for r in stored] == [r.final_score for r in result.records]

    def test_top_three_recommendations(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        result = _pipeline(test_config, store, _varied_scorers()).run(
            KLCC, radius_m=500, category="retail"
        )
        expected = [r.hex_index for r in rank(result.records)[:3]]
        assert [r.hex_index for r in result.recommendations] == expected
        assert [r.hex_index for r in result.top] == expected

        stored = store.get_recommendations(result.run.analysis_id)
        assert [r.rank for r in stored] == [1, 2, 3]
        assert [r.hex_index for r in stored] == expected
        assert stored[0].score >= stored[1].score >= stored[2].score
        assert set(stored[0].breakdown) == {d.value for d in D}

    def test_mapping_reference_point(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        result = _pipeline(test_config, store).run(
            {"lat": KL_LAT, "lon": KL_LON}, radius_m=300, category=None
        )
        assert result.run.resolved_category == "default"
        assert result.run.reference_point.name == ""


class TestDegradedRuns:
    def test_partial_on_module_failure(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        scorers = make_fake_scorers()
        scorers[D.ZONING] = FailingScorer(D.ZONING, RuntimeError("landuse offline"))
        result = _pipeline(test_config, store, scorers).run(KLCC, radius_m=300, category="fnb")

        assert result.status == "partial"
        assert result.module_errors == {"zoning": "landuse offline"}
        run = store.get_analysis(result.run.analysis_id)
        assert run.status == "partial"
        assert "zoning: landuse offline" in run.error_message
        stored = store.get_hexagon_scores(result.run.analysis_id)
        assert all(r.zoning_score is None for r in stored)
        assert all(r.final_score == 8.0 for r in stored)

    def test_all_modules_fail(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        scorers = {d: FailingScorer(d) for d in D}
        result = _pipeline(test_config, store, scorers).run(KLCC, radius_m=300, category="retail")
        assert result.status == "failed"
        assert len(store.get_recommendations(result.run.analysis_id)) == 3

    def test_no_token(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        scorers = make_fake_scorers()
        scorers[D.DEMAND] = FakeScorer(D.DEMAND, 20.0, requires_token=True)
        result = _pipeline(test_config, store, scorers, token=None).run(
            KLCC, radius_m=300, category="retail"
        )
        assert scorers[D.DEMAND].calls == 0
        assert all(r.demand_score is None for r in result.records)
        assert all(r.evidence[D.DEMAND]["error"] == "no auth token" for r in result.records)


class TestInputValidation:
    @pytest.mark.parametrize("radius", [0, -10, 10_001, float("nan")])
    def test_bad_radius(self, test_config, in_memory_db, radius):
        store = SQLiteResultStore(conn=in_memory_db)
        with pytest.raises(AnalysisInputError):
            _pipeline(test_config, store).run(KLCC, radius_m=radius, category="retail")
        assert store.get_recent_analyses() == []

    def test_max_radius_accepted(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        result = _pipeline(test_config, store).run(
            KLCC, radius_m=10_000, category="retail", max_hexagons=5
        )
        assert result.run.hexagon_count == 5

    def test_bad_latitude(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        with pytest.raises(AnalysisInputError):
            _pipeline(test_config, store).run(
                {"lat": 95.0, "lon": KL_LON}, radius_m=500, category="retail"
            )

    @pytest.mark.parametrize("weights", [{"demand": -5}, {"risk": "heavy"}])
    def test_bad_weights(self, test_config, in_memory_db, weights):
        store = SQLiteResultStore(conn=in_memory_db)
        with pytest.raises(AnalysisInputError):
            _pipeline(test_config, store).run(
                KLCC, radius_m=500, category="retail", weights=weights
            )

    def test_bad_cap(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        with pytest.raises(AnalysisInputError):
            _pipeline(test_config, store).run(
                KLCC, radius_m=500, category="retail", max_hexagons=0
            )


class TestCapsAndWeights:
    def test_max_hexagons(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        result = _pipeline(test_config, store).run(
            KLCC, radius_m=500, category="retail", max_hexagons=2
        )
        assert [h.hex_index for h in result.hexagons] == [0, 1]
        assert len(result.recommendations) == 2
        assert store.get_analysis(result.run.analysis_id).max_hexagons == 2

    def test_weight_override(self, test_config, in_memory_db):
        store = SQLiteResultStore(conn=in_memory_db)
        scorers = make_fake_scorers({D.DEMAND: 20.0})
        result = _pipeline(test_config, store, scorers).run(
            KLCC, radius_m=300, category="retail",
            weights={"demand": 100, "poi": 0, "risk": 0, "zoning": 0, "access": 0},
        )
        run = store.get_analysis(result.run.analysis_id)
        assert run.weights.demand == 100
        assert run.weights.competition == 0
        assert run.weights.accessibility == 0
        assert all(r.final_score == 20.0 for r in result.records)


class TestRequestDelay:
    def _delays(self, config, in_memory_db):
        scorers = {d: OptionsRecorder(d) for d in D}
        _pipeline(config, SQLiteResultStore(conn=in_memory_db), scorers).run(
            KLCC, radius_m=300, category="retail"
        )
        return {d: s.seen.delay_s for d, s in scorers.items()}

    def test_category_delay_used_without_override(self, in_memory_db):
        config = AppConfig(scoring=ScoringConfig(run_deadline_s=5.0))
        expected = get_category_settings("retail").request_delay_s
        assert set(self._delays(config, in_memory_db).values()) == {expected}

    def test_config_override_wins(self, in_memory_db):
        config = AppConfig(scoring=ScoringConfig(inter_request_delay_s=0.0, run_deadline_s=5.0))
        assert set(self._delays(config, in_memory_db).values()) == {0.0}


class TestStructuralFailure:
    def test_store_error_marks_run_failed(self, test_config, in_memory_db):
        store = BrokenStore(conn=in_memory_db)
        with pytest.raises(AnalysisError, match="disk full"):
            _pipeline(test_config, store).run(KLCC, radius_m=300, category="retail")

        runs = store.get_recent_analyses()
        assert len(runs) == 1
        assert runs[0].status == "failed"
        assert runs[0].error_message == "disk full"

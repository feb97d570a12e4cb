"""
End-to-end analysis: one request in, ranked recommendations out.

Usage flow
----------
    store = SQLiteResultStore(db_path=config.database.db_path)
    pipeline = AnalysisPipeline(config, store)
    result = pipeline.run(ReferencePoint(name="KLCC", lat=3.1579, lon=101.7116),
                          radius_m=1000, category="retail")

Steps performed by ``arun()``:
  1. Validate the request        → ``AnalysisInputError`` on bad input.
  2. Resolve the category preset (unknown categories use ``default``).
  3. Tessellate the catchment and cap it to ``max_hexagons``.
  4. Persist the ``AnalysisRun`` and every hexagon (ids attached).
  5. Ask the token provider for a token once; failure means ``None``.
  6. Score all five dimensions concurrently; persist per-hexagon scores.
  7. Rank, keep the top-N and persist them as recommendations.
  8. Finalize the run: ``success`` / ``partial`` / ``failed``.

A failure after the run record exists is written to the run as
``status='failed'`` and re-raised as ``AnalysisError``.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from uuid import uuid4

import httpx

from site_scorer.config import AppConfig
from site_scorer.db.store import ResultStore
from site_scorer.geometry.hexgrid import GeometryInputError, generate_hexagons
from site_scorer.models.analysis import AnalysisRun, DimensionWeights, ReferencePoint
from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import Dimension, FinalScoreRecord, RecommendedLocation
from site_scorer.pipeline.orchestrator import ModuleOutcome, ScoringOrchestrator
from site_scorer.providers.auth import TokenProvider, build_token_provider
from site_scorer.providers.base import ProviderError
from site_scorer.ranking.ranker import build_recommendations, rank
from site_scorer.scoring.base import DimensionScorer
from site_scorer.scoring.factory import build_scorers
from site_scorer.scoring.options import build_dimension_options
from site_scorer.taxonomy.categories import get_category_settings

logger = logging.getLogger(__name__)


class AnalysisInputError(ValueError):
    """The request cannot be analysed (bad point, radius, weights or cap)."""


class AnalysisError(RuntimeError):
    """A structural failure aborted a run after it was recorded."""


@dataclass
class AnalysisResult:
    """Everything one run produced.

    Attributes:
        run:             Finalized run record (``analysis_id`` set).
        hexagons:        Persisted hexagons, in generation order.
        records:         Final score records, in generation order.
        ranked:          ``records`` sorted best first.
        recommendations: The persisted top-N.
        outcomes:        Per-dimension module outcome.
    """

    run: AnalysisRun
    hexagons: list[Hexagon] = field(default_factory=list)
    records: list[FinalScoreRecord] = field(default_factory=list)
    ranked: list[FinalScoreRecord] = field(default_factory=list)
    recommendations: list[RecommendedLocation] = field(default_factory=list)
    outcomes: dict[Dimension, ModuleOutcome] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return self.run.status

    @property
    def module_errors(self) -> dict[str, str]:
        return {d.value: o.error or "" for d, o in self.outcomes.items() if not o.ok}

    @property
    def top(self) -> list[FinalScoreRecord]:
        return self.ranked[: len(self.recommendations)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisPipeline:
    """Runs analyses against an injected store and token provider.

    Args:
        config:         Application configuration.
        store:          Where runs, hexagons, scores and recommendations go.
        token_provider: Token source; built from ``config.auth`` when omitted.
        scorers:        Scorer per dimension; built from ``config.providers``
                        when omitted.
        http_client:    Shared ``httpx.AsyncClient``; a client is opened per
                        run when omitted.
    """

    def __init__(
        self,
        config: AppConfig,
        store: ResultStore,
        token_provider: Optional[TokenProvider] = None,
        scorers: Optional[Mapping[Dimension, DimensionScorer]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.token_provider = token_provider
        self.scorers = dict(scorers) if scorers is not None else None
        self.http_client = http_client

    def run(
        self,
        reference_point: ReferencePoint | Mapping[str, Any],
        radius_m: float,
        category: Optional[str],
        weights: Optional[DimensionWeights | Mapping[str, Any]] = None,
        max_hexagons: Optional[int] = None,
    ) -> AnalysisResult:
        """Synchronous wrapper around ``arun()``."""
        return asyncio.run(
            self.arun(reference_point, radius_m, category, weights, max_hexagons)
        )

    async def arun(
        self,
        reference_point: ReferencePoint | Mapping[str, Any],
        radius_m: float,
        category: Optional[str],
        weights: Optional[DimensionWeights | Mapping[str, Any]] = None,
        max_hexagons: Optional[int] = None,
    ) -> AnalysisResult:
        point = self._validate_point(reference_point)
        radius = self._validate_radius(radius_m)
        cap = self._validate_cap(max_hexagons)
        resolved_weights = self._resolve_weights(weights)

        settings = get_category_settings(category)
        try:
            hexagons = generate_hexagons(point.lon, point.lat, radius, settings.side_length_m)
        except GeometryInputError as exc:
            raise AnalysisInputError(str(exc)) from exc
        if cap is not None and len(hexagons) > cap:
            logger.warning(
                "Capping %d hexagons to max_hexagons=%d", len(hexagons), cap
            )
            hexagons = hexagons[:cap]

        run = AnalysisRun(
            run_slug=str(uuid4()),
            reference_point=point,
            category=category or "",
            resolved_category=settings.slug,
            radius_m=radius,
            max_hexagons=cap,
            weights=resolved_weights,
            started_at=_utcnow(),
        )
        self.store.save_analysis(run)
        logger.info(
            "Analysis starting | run_slug=%s | category=%s->%s | radius=%.0fm | hexagons=%d",
            run.run_slug, run.category, run.resolved_category, radius, len(hexagons),
        )

        try:
            if self.http_client is not None:
                result = await self._execute(run, hexagons, settings, self.http_client)
            else:
                async with httpx.AsyncClient(timeout=self.config.providers.timeout_s) as http:
                    result = await self._execute(run, hexagons, settings, http)
        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc) or type(exc).__name__
            run.finished_at = _utcnow()
            logger.error("Analysis FAILED: %s | run_slug=%s", exc, run.run_slug)
            self.store.update_analysis(run)
            raise AnalysisError(f"Analysis {run.run_slug} failed: {exc}") from exc

        logger.info(
            "Analysis completed | status=%s | hexagons=%d | top=%s | run_slug=%s",
            run.status, run.hexagon_count,
            [r.hex_index for r in result.recommendations], run.run_slug,
        )
        return result

    async def _execute(
        self,
        run: AnalysisRun,
        hexagons: list[Hexagon],
        settings,
        http: httpx.AsyncClient,
    ) -> AnalysisResult:
        analysis_id = run.analysis_id
        assert analysis_id is not None

        saved = [
            h.with_id(self.store.save_hexagon(h, h.hex_index, analysis_id)) for h in hexagons
        ]
        run.hexagon_count = len(saved)

        token = await self._obtain_token(http)
        scorers = self.scorers or build_scorers(http, self.config.providers)
        options = build_dimension_options(
            settings, run.radius_m, self.config.scoring.inter_request_delay_s
        )
        orchestrator = ScoringOrchestrator(scorers, self.config.scoring.run_deadline_s)
        scoring = await orchestrator.run(saved, token, run.weights, options)
        self.store.save_dimension_scores(saved, scoring.records)

        ranked = rank(scoring.records)
        recommendations = build_recommendations(ranked[: self.config.scoring.top_n])
        self.store.save_top_recommendations(analysis_id, recommendations)

        run.status = scoring.status
        run.error_message = "; ".join(scoring.errors) or None
        run.finished_at = _utcnow()
        self.store.update_analysis(run)

        return AnalysisResult(
            run=run,
            hexagons=saved,
            records=scoring.records,
            ranked=ranked,
            recommendations=recommendations,
            outcomes=scoring.outcomes,
        )

    async def _obtain_token(self, http: httpx.AsyncClient) -> Optional[str]:
        provider = self.token_provider or build_token_provider(
            self.config.auth, http, self.config.providers.timeout_s
        )
        try:
            token = await provider.get_token()
        except (ProviderError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Token acquisition failed, continuing without token: %s", exc)
            return None
        if token is None:
            logger.warning("No token available; demand and competition will be missing.")
        return token

    # ── Input validation ──────────────────────────────────────────────────────

    @staticmethod
    def _validate_point(point: ReferencePoint | Mapping[str, Any]) -> ReferencePoint:
        if isinstance(point, ReferencePoint):
            return point
        try:
            return ReferencePoint(**dict(point))
        except (TypeError, ValueError) as exc:
            raise AnalysisInputError(f"Invalid reference point: {exc}") from exc

    def _validate_radius(self, radius_m: float) -> float:
        if isinstance(radius_m, bool) or not isinstance(radius_m, (int, float)):
            raise AnalysisInputError(f"radius_m must be a number, got {radius_m!r}.")
        limit = self.config.scoring.max_radius_m
        if not math.isfinite(radius_m) or not 0 < radius_m <= limit:
            raise AnalysisInputError(f"radius_m must be in (0, {limit:.0f}], got {radius_m}.")
        return float(radius_m)

    def _validate_cap(self, max_hexagons: Optional[int]) -> Optional[int]:
        cap = max_hexagons if max_hexagons is not None else self.config.scoring.max_hexagons
        if cap is not None and (isinstance(cap, bool) or not isinstance(cap, int) or cap < 1):
            raise AnalysisInputError(f"max_hexagons must be a positive integer, got {cap!r}.")
        return cap

    def _resolve_weights(
        self, weights: Optional[DimensionWeights | Mapping[str, Any]]
    ) -> DimensionWeights:
        if isinstance(weights, DimensionWeights):
            return weights
        defaults = DimensionWeights(**self.config.scoring.default_weights.model_dump())
        try:
            return DimensionWeights.from_mapping(weights, defaults)
        except (TypeError, ValueError) as exc:
            raise AnalysisInputError(f"Invalid weights: {exc}") from exc

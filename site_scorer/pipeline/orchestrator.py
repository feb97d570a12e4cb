"""
Concurrent scoring orchestration.

The ``ScoringOrchestrator`` runs the five dimension scorers as independent
asyncio tasks over the same read-only hexagon set and settles all of them:

  Step 1 — Fan out:   one task per scorer; each task wraps its scorer so an
                      exception becomes a failed ``ModuleOutcome`` value
                      instead of crossing the task boundary.
  Step 2 — Settle:    wait for every task, bounded by the run deadline.
  Step 3 — Deadline:  tasks still pending at the deadline are cancelled and
                      recorded as failed (``"deadline exceeded"``).
  Step 4 — Aggregate: zip each dimension's results with the hexagons; failed
                      dimensions contribute ``None`` for every hexagon.

Failure isolation
-----------------
- Single-hexagon provider failure: absorbed inside the scorer (score ``None``).
- Whole-module failure (exception, wrong result length, deadline):
  recorded in ``ModuleOutcome.error``; the other modules are unaffected.
- Status: "success" when every module succeeded, "partial" when some
  failed, "failed" when none produced results.

Each task writes only its own outcome; the orchestrator is the sole merger,
so no locking is needed beyond the settle barrier.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

import httpx

from site_scorer.config import AppConfig
from site_scorer.models.analysis import DimensionWeights
from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import Dimension, DimensionScore, FinalScoreRecord
from site_scorer.ranking.aggregator import aggregate
from site_scorer.scoring.base import DimensionScorer
from site_scorer.scoring.options import DimensionOptions

logger = logging.getLogger(__name__)

DEADLINE_EXCEEDED = "deadline exceeded"


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass
class ModuleOutcome:
    """Settled result of one scorer task.

    Attributes:
        dimension: Dimension the scorer produces.
        ok:        True if the scorer returned a full result list.
        scores:    One ``DimensionScore`` per hexagon when ``ok``.
        error:     Failure description when not ``ok``.
        elapsed_s: Wall time spent in the scorer.
    """

    dimension: Dimension
    ok:        bool
    scores:    Optional[list[DimensionScore]] = None
    error:     Optional[str] = None
    elapsed_s: float = 0.0


@dataclass
class ScoringResult:
    """Aggregated records plus the per-module outcomes that produced them."""

    records:  list[FinalScoreRecord] = field(default_factory=list)
    outcomes: dict[Dimension, ModuleOutcome] = field(default_factory=dict)

    @property
    def failed_dimensions(self) -> list[Dimension]:
        return [d for d, o in self.outcomes.items() if not o.ok]

    @property
    def errors(self) -> list[str]:
        return [f"{d.value}: {o.error}" for d, o in self.outcomes.items() if not o.ok]

    @property
    def status(self) -> str:
        failed = len(self.failed_dimensions)
        if failed == 0:
            return "success"
        if failed == len(self.outcomes):
            return "failed"
        return "partial"


# ── Orchestrator ──────────────────────────────────────────────────────────────

class ScoringOrchestrator:
    """Runs the dimension scorers concurrently with settle-all semantics.

    Args:
        scorers:    Scorer per dimension. Dimensions without a scorer are
                    reported as failed modules.
        deadline_s: Run-level deadline in seconds; ``None`` waits indefinitely.
    """

    def __init__(
        self,
        scorers: Mapping[Dimension, DimensionScorer],
        deadline_s: Optional[float] = None,
    ) -> None:
        self.scorers = dict(scorers)
        self.deadline_s = deadline_s

    async def collect(
        self,
        hexagons: Sequence[Hexagon],
        token: Optional[str],
        options: DimensionOptions,
    ) -> dict[Dimension, ModuleOutcome]:
        """Run every scorer and return one settled outcome per dimension."""
        shared = tuple(hexagons)
        tasks: dict[Dimension, asyncio.Task] = {
            dim: asyncio.create_task(
                self._run_module(dim, scorer, shared, token, options.for_dimension(dim)),
                name=f"score-{dim.value}",
            )
            for dim, scorer in self.scorers.items()
        }

        pending: set[asyncio.Task] = set()
        if tasks:
            _, pending = await asyncio.wait(tasks.values(), timeout=self.deadline_s)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.error(
                "Run deadline of %.0fs exceeded; cancelled: %s",
                self.deadline_s or 0.0,
                sorted(t.get_name() for t in pending),
            )

        outcomes: dict[Dimension, ModuleOutcome] = {}
        for dim in Dimension:
            task = tasks.get(dim)
            if task is None:
                outcomes[dim] = ModuleOutcome(dim, ok=False, error="no scorer configured")
            elif task in pending or task.cancelled():
                outcomes[dim] = ModuleOutcome(dim, ok=False, error=DEADLINE_EXCEEDED)
            else:
                outcomes[dim] = task.result()
        return outcomes

    async def _run_module(
        self,
        dimension: Dimension,
        scorer: DimensionScorer,
        hexagons: tuple[Hexagon, ...],
        token: Optional[str],
        options,
    ) -> ModuleOutcome:
        started = time.monotonic()
        try:
            scores = await scorer.score(hexagons, token, options)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Scorer [%s] FAILED: %s", dimension.value, exc)
            return ModuleOutcome(
                dimension, ok=False, error=str(exc) or type(exc).__name__,
                elapsed_s=time.monotonic() - started,
            )

        elapsed = time.monotonic() - started
        if len(scores) != len(hexagons):
            msg = f"returned {len(scores)} results for {len(hexagons)} hexagons"
            logger.error("Scorer [%s] FAILED: %s", dimension.value, msg)
            return ModuleOutcome(dimension, ok=False, error=msg, elapsed_s=elapsed)
        return ModuleOutcome(dimension, ok=True, scores=list(scores), elapsed_s=elapsed)

    async def run(
        self,
        hexagons: Sequence[Hexagon],
        token: Optional[str],
        weights: Optional[DimensionWeights],
        options: DimensionOptions,
    ) -> ScoringResult:
        """Collect every module, then aggregate in hexagon order."""
        outcomes = await self.collect(hexagons, token, options)
        per_dimension = {d: o.scores if o.ok else None for d, o in outcomes.items()}
        records = aggregate(hexagons, per_dimension, weights or DimensionWeights())
        result = ScoringResult(records=records, outcomes=outcomes)
        logger.info(
            "Scoring settled | hexagons=%d | status=%s | failed=%s",
            len(hexagons), result.status, [d.value for d in result.failed_dimensions],
        )
        return result

    async def run_all(
        self,
        hexagons: Sequence[Hexagon],
        token: Optional[str],
        weights: Optional[DimensionWeights],
        options: DimensionOptions,
    ) -> list[FinalScoreRecord]:
        """Final score records only, unsorted (hexagon order)."""
        return (await self.run(hexagons, token, weights, options)).records


def run_all_scoring(
    hexagons: Sequence[Hexagon],
    token: Optional[str],
    weights: Optional[DimensionWeights],
    options: DimensionOptions,
    scorers: Optional[Mapping[Dimension, DimensionScorer]] = None,
    config: Optional[AppConfig] = None,
) -> list[FinalScoreRecord]:
    """Synchronous entry point: score ``hexagons`` on all five dimensions.

    When ``scorers`` is omitted they are built from ``config`` around a
    fresh ``httpx.AsyncClient`` that lives for this call only.
    """
    cfg = config or AppConfig()

    async def _main() -> list[FinalScoreRecord]:
        if scorers is not None:
            orchestrator = ScoringOrchestrator(scorers, cfg.scoring.run_deadline_s)
            return await orchestrator.run_all(hexagons, token, weights, options)

        from site_scorer.scoring.factory import build_scorers

        async with httpx.AsyncClient() as http:
            orchestrator = ScoringOrchestrator(
                build_scorers(http, cfg.providers), cfg.scoring.run_deadline_s
            )
            return await orchestrator.run_all(hexagons, token, weights, options)

    return asyncio.run(_main())

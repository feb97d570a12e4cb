"""
Abstract base class for the five dimension scorers.

Every scorer follows the same contract:
  1. ``score(hexagons, token, options)`` is the sole public API and returns
     exactly one ``DimensionScore`` per hexagon, in input order.
  2. ``_prepare(token, options)`` runs once per call for module-level work
     (e.g. resolving category ids) and may return adjusted options.
  3. ``_score_hexagon(hexagon, token, options)`` scores a single cell.

Hexagons are processed sequentially with ``options.delay_s`` between them so
that provider rate limits hold. Parallelising inside a scorer is
not supported; the orchestrator parallelises across scorers instead.

Failure levels:
  - A provider or payload error for one hexagon is absorbed here: that cell
    gets ``DimensionScore(score=None, evidence={"error": ...})`` and the loop
    continues.
  - An error from ``_prepare`` (or any non-absorbed exception) propagates out
    of ``score()``; the orchestrator records the whole dimension as failed.

Scorers with ``requires_token = True`` make no provider calls when the token
is ``None`` and report every cell as missing.

Usage::

    class MyScorer(DimensionScorer):
        dimension = Dimension.RISK

        async def _score_hexagon(self, hexagon, token, options) -> DimensionScore:
            return DimensionScore(score=20.0, evidence={})
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, Sequence

import httpx

from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import MAX_DIMENSION_SCORE, Dimension, DimensionScore
from site_scorer.providers.base import ProviderError

logger = logging.getLogger(__name__)

# Errors confined to a single hexagon.
HEXAGON_ERRORS: tuple[type[Exception], ...] = (
    ProviderError,
    httpx.HTTPError,
    ValueError,
    KeyError,
    TypeError,
)


class ScoringModuleError(RuntimeError):
    """A scorer cannot run at all for this request (all cells become missing)."""


def clamp_score(value: float, decimals: Optional[int] = None) -> float:
    """Clamp to [0, 20], optionally rounding."""
    clamped = max(0.0, min(MAX_DIMENSION_SCORE, float(value)))
    return round(clamped, decimals) if decimals is not None else clamped


class DimensionScorer(ABC):
    """Base class for one scoring dimension.

    Attributes:
        dimension:      Which axis this scorer produces.
        requires_token: Skip provider calls entirely when no token is available.
    """

    dimension: ClassVar[Dimension]
    requires_token: ClassVar[bool] = False

    async def score(
        self,
        hexagons: Sequence[Hexagon],
        token: Optional[str],
        options: Any,
    ) -> list[DimensionScore]:
        """Score every hexagon, sequentially and in order.

        Raises:
            ScoringModuleError: When module-level preparation fails.
        """
        name = self.dimension.value
        if self.requires_token and not token:
            logger.warning("Scorer [%s] skipped: no auth token available.", name)
            return [DimensionScore.missing("no auth token") for _ in hexagons]

        options = await self._prepare(token, options)
        delay_s = float(getattr(options, "delay_s", 0.0) or 0.0)

        logger.info("Scorer [%s] starting | hexagons=%d", name, len(hexagons))
        results: list[DimensionScore] = []
        for i, hexagon in enumerate(hexagons):
            if i > 0 and delay_s > 0:
                await asyncio.sleep(delay_s)
            results.append(await self._score_one(hexagon, token, options))

        missing = sum(1 for r in results if r.is_missing)
        logger.info(
            "Scorer [%s] completed | hexagons=%d | missing=%d", name, len(results), missing
        )
        return results

    async def _score_one(
        self, hexagon: Hexagon, token: Optional[str], options: Any
    ) -> DimensionScore:
        try:
            return await self._score_hexagon(hexagon, token, options)
        except HEXAGON_ERRORS as exc:
            logger.warning(
                "Scorer [%s] hexagon %d missing: %s",
                self.dimension.value, hexagon.hex_index, exc,
                extra={"dimension": self.dimension.value, "hex_index": hexagon.hex_index},
            )
            return DimensionScore.missing(str(exc))

    async def _prepare(self, token: Optional[str], options: Any) -> Any:
        """Once-per-call setup; returns the options used for every hexagon."""
        return options

    @abstractmethod
    async def _score_hexagon(
        self, hexagon: Hexagon, token: Optional[str], options: Any
    ) -> DimensionScore:
        """Score a single hexagon.

        Raises:
            ProviderError, ValueError, …: Absorbed by ``_score_one``.
        """
        ...

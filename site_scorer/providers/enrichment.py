"""
Population enrichment client (ArcGIS GeoEnrichment ``/enrich``).

The response shape varies between data collections and service versions, so
``extract_total_population`` tries the documented path first and then falls
back to a depth-first search for the first ``TOTPOP_CY`` key.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Optional, Sequence

from site_scorer.providers.base import ProviderClient

logger = logging.getLogger(__name__)

POPULATION_FIELD = "TOTPOP_CY"


def _feature_sets(value: Any) -> list[dict]:
    feature_set = value.get("FeatureSet") if isinstance(value, dict) else None
    if isinstance(feature_set, dict):
        return [feature_set]
    if isinstance(feature_set, list):
        return [fs for fs in feature_set if isinstance(fs, dict)]
    return []


def _search_key(node: Any, key: str) -> Any:
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            if key in current:
                return current[key]
            stack.extend(v for v in current.values() if isinstance(v, (dict, list)))
        elif isinstance(current, list):
            stack.extend(v for v in current if isinstance(v, (dict, list)))
    return None


def extract_total_population(payload: Any) -> Optional[float]:
    """Pull ``TOTPOP_CY`` out of an enrichment response.

    Returns:
        The population as a float, or ``None`` when absent or not numeric.
    """
    raw: Any = None
    results = payload.get("results") if isinstance(payload, dict) else None
    if isinstance(results, list):
        for result in results:
            value = result.get("value", result) if isinstance(result, dict) else None
            for fs in _feature_sets(value):
                features = fs.get("features") or []
                if features and isinstance(features[0], dict):
                    attrs = features[0].get("attributes") or {}
                    if POPULATION_FIELD in attrs:
                        raw = attrs[POPULATION_FIELD]
                        break
            if raw is not None:
                break
            if isinstance(value, dict) and POPULATION_FIELD in (value.get("attributes") or {}):
                raw = value["attributes"][POPULATION_FIELD]
                break

    if raw is None:
        raw = _search_key(payload, POPULATION_FIELD)

    if raw is None or isinstance(raw, bool):
        return None
    try:
        population = float(raw)
    except (TypeError, ValueError):
        return None
    return population if math.isfinite(population) else None


class PopulationEnrichmentClient(ProviderClient):
    """Per-polygon population estimate."""

    name = "enrichment"

    def __init__(self, http, policy=None, url: str = "") -> None:
        super().__init__(http, policy)
        self.url = url

    async def query(
        self,
        ring: list[list[float]],
        token: Optional[str],
        country: str = "MY",
        data_collections: Sequence[str] = ("KeyFacts",),
        retries: Optional[int] = None,
    ) -> Optional[float]:
        """Population inside ``ring`` or ``None`` when the response has none.

        Raises:
            ProviderError: When the enrichment call fails after retries.
        """
        study_areas = [{
            "geometry": {"rings": [ring], "spatialReference": {"wkid": 4326}},
        }]
        payload = await self.request_json(
            "POST",
            self.url,
            data={
                "studyAreas": json.dumps(study_areas),
                "dataCollections": json.dumps(list(data_collections)),
                "useData": json.dumps({"sourceCountry": country}),
                "returnGeometry": "false",
                "f": "json",
            },
            token=token,
            retries=retries,
        )
        population = extract_total_population(payload)
        if population is None:
            logger.debug("Enrichment response carried no %s", POPULATION_FIELD)
        return population

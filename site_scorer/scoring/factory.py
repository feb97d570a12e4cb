"""
Wire the five scorers to their provider clients from configuration.
"""

from __future__ import annotations

import httpx

from site_scorer.config import ProvidersConfig
from site_scorer.models.score import Dimension
from site_scorer.providers.base import RetryPolicy
from site_scorer.providers.enrichment import PopulationEnrichmentClient
from site_scorer.providers.facilities import FacilitiesClient
from site_scorer.providers.hazard import HazardClient
from site_scorer.providers.landuse import LandUseClient
from site_scorer.providers.places import PlacesClient
from site_scorer.scoring.accessibility import AccessibilityScorer
from site_scorer.scoring.base import DimensionScorer
from site_scorer.scoring.competition import CompetitionScorer
from site_scorer.scoring.demand import DemandScorer
from site_scorer.scoring.risk import RiskScorer
from site_scorer.scoring.zoning import ZoningScorer


def build_scorers(
    http: httpx.AsyncClient, config: ProvidersConfig
) -> dict[Dimension, DimensionScorer]:
    """One scorer per dimension, all sharing ``http`` and the retry policy."""
    policy = RetryPolicy.from_config(config)
    return {
        Dimension.DEMAND: DemandScorer(
            PopulationEnrichmentClient(http, policy, url=config.geoenrichment_url)
        ),
        Dimension.COMPETITION: CompetitionScorer(
            PlacesClient(http, policy, base_url=config.places_url)
        ),
        Dimension.RISK: RiskScorer(
            HazardClient(
                http,
                policy,
                flood_url=config.flood_layer_url,
                landslide_url=config.landslide_layer_url,
                flood_wkid=config.flood_layer_wkid,
                landslide_wkid=config.landslide_layer_wkid,
            )
        ),
        Dimension.ZONING: ZoningScorer(
            LandUseClient(http, policy, layer_url=config.landuse_layer_url)
        ),
        Dimension.ACCESSIBILITY: AccessibilityScorer(
            FacilitiesClient(http, policy, layer_url=config.facilities_layer_url)
        ),
    }

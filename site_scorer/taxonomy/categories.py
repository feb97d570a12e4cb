"""
Business-category presets.

Every analysis resolves exactly one ``CategorySettings`` before tessellation.
The table is read-only at request time; unknown or missing categories fall
back to the ``default`` preset instead of failing the run.

``places_category_filter`` is the free-text filter sent to the places
categories endpoint; it doubles as the category name the zoning scorer checks
against the "commercial land use gets full marks" override.

``suggested_weights`` are the per-category weight presets offered to users.
They are advisory: the engine uses the caller's weights, or 20 each.

This module has NO imports from any other ``site_scorer`` package.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_CATEGORY = "default"


class CategorySettings(BaseModel):
    """Per-category scoring parameters.

    Attributes:
        slug:                     Lookup key (e.g. ``"retail"``).
        display_name:             Human label.
        side_length_m:            Hexagon side length in meters.
        risk_ratio:               Share of the risk score assigned to flood.
        places_category_filter:   Text filter for places category-id lookup.
        places_category_ids:      Pre-resolved place category ids; skips lookup.
        demand_base_max_per_km2:  Population density giving a demand score of 10.
        max_competitors:          Competitor count at which competition scores 0.
        accessibility_threshold_m: Distance at which accessibility scores 0.
        accessibility_buffer_m:   Buffered point search radius.
        request_delay_s:          Pause between hexagons within one scorer.
        enrichment_country:       Country code for population enrichment.
        enrichment_data_collections: Enrichment data collections to request.
        enrichment_retries:       Extra enrichment attempts per hexagon.
        suggested_weights:        Advisory UI weight preset.
    """

    model_config = ConfigDict(frozen=True)

    slug: str
    display_name: str
    side_length_m: float = 150.0
    risk_ratio: float = 0.5
    places_category_filter: Optional[str] = None
    places_category_ids: tuple[str, ...] = ()
    demand_base_max_per_km2: float = 4000.0
    max_competitors: int = 6
    accessibility_threshold_m: float = 400.0
    accessibility_buffer_m: float = 1000.0
    request_delay_s: float = 0.25
    enrichment_country: str = "MY"
    enrichment_data_collections: tuple[str, ...] = ("KeyFacts",)
    enrichment_retries: int = 2
    suggested_weights: dict[str, float] = {
        "demand": 20.0, "competition": 20.0, "risk": 20.0,
        "zoning": 20.0, "accessibility": 20.0,
    }

    @field_validator("risk_ratio")
    @classmethod
    def validate_risk_ratio(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"risk_ratio must be in [0, 1], got {v}.")
        return v

    @field_validator("side_length_m", "accessibility_threshold_m", "accessibility_buffer_m")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Value must be > 0, got {v}.")
        return v

    @field_validator("max_competitors")
    @classmethod
    def validate_max_competitors(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_competitors must be >= 1, got {v}.")
        return v


CATEGORY_PRESETS: dict[str, CategorySettings] = {
    "retail": CategorySettings(
        slug="retail",
        display_name="Retail",
        places_category_filter="Retail",
        demand_base_max_per_km2=4000,
        max_competitors=6,
        accessibility_threshold_m=400,
        suggested_weights={
            "demand": 30, "competition": 20, "accessibility": 25, "zoning": 15, "risk": 10,
        },
    ),
    "healthcare": CategorySettings(
        slug="healthcare",
        display_name="Health & Wellness",
        places_category_filter="Health and Medicine",
        demand_base_max_per_km2=3000,
        max_competitors=4,
        accessibility_threshold_m=300,
        suggested_weights={
            "demand": 30, "competition": 15, "accessibility": 20, "zoning": 25, "risk": 10,
        },
    ),
    "fnb": CategorySettings(
        slug="fnb",
        display_name="Food & Beverage",
        places_category_filter="Dining and Drinking",
        demand_base_max_per_km2=2000,
        max_competitors=5,
        accessibility_threshold_m=300,
        suggested_weights={
            "demand": 25, "competition": 25, "accessibility": 25, "zoning": 15, "risk": 10,
        },
    ),
    "automotive": CategorySettings(
        slug="automotive",
        display_name="Automotive",
        places_category_filter="Automotive Services",
        demand_base_max_per_km2=1500,
        max_competitors=5,
        accessibility_threshold_m=500,
        suggested_weights={
            "demand": 20, "competition": 25, "accessibility": 30, "zoning": 15, "risk": 10,
        },
    ),
    "sports": CategorySettings(
        slug="sports",
        display_name="Sports & Recreation",
        places_category_filter="Sports and Recreation",
        demand_base_max_per_km2=2000,
        max_competitors=4,
        accessibility_threshold_m=400,
        suggested_weights={
            "demand": 30, "competition": 20, "accessibility": 25, "zoning": 15, "risk": 10,
        },
    ),
    DEFAULT_CATEGORY: CategorySettings(
        slug=DEFAULT_CATEGORY,
        display_name="General",
        demand_base_max_per_km2=4000,
        max_competitors=6,
        accessibility_threshold_m=400,
    ),
}

# Alternative spellings seen in route payloads.
_CATEGORY_ALIASES: dict[str, str] = {
    "health": "healthcare",
    "health and medicine": "healthcare",
    "food": "fnb",
    "f&b": "fnb",
    "dining and drinking": "fnb",
    "automotive services": "automotive",
    "sports and recreation": "sports",
}


def normalize_category(category: Optional[str]) -> str:
    """Map a raw category string to a preset slug (``default`` when unknown)."""
    if not category:
        return DEFAULT_CATEGORY
    key = category.strip().lower()
    key = _CATEGORY_ALIASES.get(key, key)
    return key if key in CATEGORY_PRESETS else DEFAULT_CATEGORY


def get_category_settings(category: Optional[str]) -> CategorySettings:
    """Return the preset for ``category``, falling back to ``default``."""
    return CATEGORY_PRESETS[normalize_category(category)]


def list_categories() -> list[CategorySettings]:
    """All presets, ``default`` last."""
    return sorted(
        CATEGORY_PRESETS.values(),
        key=lambda s: (s.slug == DEFAULT_CATEGORY, s.slug),
    )

"""
Zoning scorer — land-use suitability of the parcel under each hexagon.

Label extraction
----------------
Land-use layers do not agree on attribute names, so the label is found by an
explicit, ordered chain of extractors; the first hit wins:

  1. ``ExactFieldExtractor``     — a prioritized list of known field names
                                   (case-insensitive).
  2. ``FuzzySubstringExtractor`` — any field whose name contains one of a
                                   prioritized list of substrings.

Only non-blank, non-numeric string values count as a label.

Scoring rules (in order)
------------------------
  1. provider error                                         → ``None``
  2. label in the unusable set (water, forest, beach, transport) → 0
  3. commercial category on commercial land                 → 20
  4. ``sports`` category on recreational open space         → 20
  5. no intersecting feature / no label                     → 10
  6. label in ``LANDUSE_SCORES``                            → table value
  7. unknown label                                          → 10

Labels are matched after lower-casing and whitespace collapsing. Malay labels
from the national land-use layer and their English equivalents share scores.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from site_scorer.models.hexagon import Hexagon
from site_scorer.models.score import Dimension, DimensionScore
from site_scorer.providers.landuse import LandUseClient
from site_scorer.scoring.base import DimensionScorer
from site_scorer.scoring.options import ZoningOptions

FULL_SCORE = 20.0
NEUTRAL_SCORE = 10.0

PRIORITY_FIELDS: tuple[str, ...] = (
    "lu_name", "lu_name_en", "lu", "landuse", "land_use", "zoning", "zone",
    "zon", "kelas", "kategori", "nama_kegunaan", "nama", "name",
    "description", "desc", "label", "usage", "jenis", "use",
)
FUZZY_SUBSTRINGS: tuple[str, ...] = ("lu", "land", "zone", "kelas", "nama", "use")

COMMERCIAL_LABELS = frozenset({"komersial", "commercial"})
RECREATION_LABELS = frozenset({
    "tanah lapang dan rekreasi", "open space and recreation", "recreation",
})

UNUSABLE_LANDUSES = frozenset({
    "badan air", "hutan", "pantai", "pengangkutan",
    "water body", "forest", "beach", "transport", "transportation",
})

LANDUSE_SCORES: dict[str, float] = {
    "komersial": 18,
    "perumahan": 12,
    "industri": 6,
    "pertanian": 2,
    "pembangunan bercampur": 14,
    "institusi dan kemudahan masyarakat": 16,
    "infrastruktur dan utiliti": 4,
    "tanah kosong": 10,
    "tanah lapang dan rekreasi": 20,
    "commercial": 18,
    "residential": 12,
    "industrial": 6,
    "agriculture": 2,
    "mixed development": 14,
    "institutional and community facilities": 16,
    "infrastructure and utilities": 4,
    "vacant land": 10,
    "open space and recreation": 20,
}

# Categories for which commercial zoning earns full marks (slugs and place names).
COMMERCIAL_CATEGORIES = frozenset({
    "retail", "healthcare", "fnb", "automotive", "sports",
    "health and medicine", "automotive services", "sports and recreation",
    "dining and drinking",
})

_WS = re.compile(r"\s+")


def normalize_label(value: Any) -> str:
    if value is None:
        return ""
    return _WS.sub(" ", str(value).strip().lower())


def _usable_label(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (bool, int, float)):
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        float(text)
    except ValueError:
        return text
    return None


@dataclass(frozen=True)
class LabelMatch:
    label: str
    field: str
    extractor: str


class LabelExtractor(Protocol):
    name: str

    def extract(self, attributes: dict[str, Any]) -> Optional[LabelMatch]: ...


@dataclass(frozen=True)
class ExactFieldExtractor:
    fields: Sequence[str] = PRIORITY_FIELDS
    name: str = "exact"

    def extract(self, attributes: dict[str, Any]) -> Optional[LabelMatch]:
        by_lower = {k.lower(): k for k in attributes}
        for field in self.fields:
            key = by_lower.get(field.lower())
            if key is None:
                continue
            if (label := _usable_label(attributes[key])) is not None:
                return LabelMatch(label=label, field=key, extractor=self.name)
        return None


@dataclass(frozen=True)
class FuzzySubstringExtractor:
    substrings: Sequence[str] = FUZZY_SUBSTRINGS
    name: str = "fuzzy"

    def extract(self, attributes: dict[str, Any]) -> Optional[LabelMatch]:
        for sub in self.substrings:
            for key, value in attributes.items():
                if sub not in key.lower():
                    continue
                if (label := _usable_label(value)) is not None:
                    return LabelMatch(label=label, field=key, extractor=self.name)
        return None


DEFAULT_EXTRACTORS: tuple[LabelExtractor, ...] = (
    ExactFieldExtractor(),
    FuzzySubstringExtractor(),
)


def extract_landuse_label(
    attributes: Optional[dict[str, Any]],
    extractors: Sequence[LabelExtractor] = DEFAULT_EXTRACTORS,
) -> Optional[LabelMatch]:
    """First label any extractor finds, or ``None``."""
    if not attributes:
        return None
    for extractor in extractors:
        if (match := extractor.extract(attributes)) is not None:
            return match
    return None


def zoning_score(
    label: Optional[str], category: str, category_name: Optional[str] = None
) -> float:
    """Score a land-use label for a business category (rules 2–7 above)."""
    lu = normalize_label(label)
    cats = {normalize_label(category), normalize_label(category_name)}

    if lu and lu in UNUSABLE_LANDUSES:
        return 0.0
    if lu in COMMERCIAL_LABELS and cats & COMMERCIAL_CATEGORIES:
        return FULL_SCORE
    if "sports" in cats and lu in RECREATION_LABELS:
        return FULL_SCORE
    if not lu:
        return NEUTRAL_SCORE
    return float(LANDUSE_SCORES.get(lu, NEUTRAL_SCORE))


class ZoningScorer(DimensionScorer):
    dimension = Dimension.ZONING

    def __init__(
        self,
        client: LandUseClient,
        extractors: Sequence[LabelExtractor] = DEFAULT_EXTRACTORS,
    ) -> None:
        self.client = client
        self.extractors = tuple(extractors)

    async def _score_hexagon(
        self, hexagon: Hexagon, token: Optional[str], options: ZoningOptions
    ) -> DimensionScore:
        attributes = await self.client.query_polygon(hexagon.ring_as_lists(), token)
        match = extract_landuse_label(attributes, self.extractors)
        label = match.label if match else None
        return DimensionScore(
            score=zoning_score(label, options.category, options.category_name),
            evidence={
                "landuse": label,
                "matched_field": match.field if match else None,
                "extractor": match.extractor if match else None,
            },
        )

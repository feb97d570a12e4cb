"""
Dimension scorers: each turns a hexagon set into one ``DimensionScore`` per
hexagon, calling its provider sequentially with a delay between cells.

Modules
-------
base          : DimensionScorer ABC, per-hexagon failure absorption, clamp_score().
options       : per-dimension option dataclasses + build_dimension_options().
demand        : population enrichment, area-scaled saturating curve.
competition   : places inside the cell vs. max_competitors.
risk          : flood / landslide intersection split by risk_ratio.
zoning        : land-use label extraction chain + label → score table.
accessibility : haversine distance to the nearest facility.
factory       : build_scorers() — wires scorers to provider clients.
"""

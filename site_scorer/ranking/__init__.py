"""
Aggregation and ranking: combines the five dimension scores of each hexagon
into one weighted final score and selects the top-N recommended locations.

Modules
-------
aggregator : extract_numeric_score() + weighted_final_score() + aggregate()
             — pure functions, no I/O.
ranker     : rank() + rank_and_select_top() + build_recommendations()
             with per-dimension breakdown and reasoning.
"""

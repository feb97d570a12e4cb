"""
Scoring pipeline.

Modules
-------
orchestrator : ScoringOrchestrator, concurrent settle-all scoring with a deadline.
analysis     : AnalysisPipeline, request validation through persisted top-N.
"""

"""
SQLite persistence for analyses, hexagons, scores and recommendations.

Modules
-------
connection   : get_connection() context manager.
schema       : DDL + apply_schema().
repositories : explicit-SQL repositories per table group.
store        : ResultStore protocol + SQLiteResultStore.
"""

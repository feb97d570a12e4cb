"""Explicit-SQL repositories over the result store tables."""

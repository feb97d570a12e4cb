"""File exports of analysis results (flat CSV, nested JSON)."""

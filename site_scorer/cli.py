"""
Site Scorer — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the action (DB init, tessellation, full analysis, lookup).
  5. Report the result to stdout.

Install and run::

    pip install -e .
    site-scorer --help
    site-scorer init-db
    site-scorer validate-config
    site-scorer list-categories
    site-scorer hexagons --lat 3.1579 --lon 101.7116 --radius 1000
    site-scorer run-analysis --lat 3.1579 --lon 101.7116 --radius 1000 --category retail
    site-scorer show-analysis 1
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="site-scorer",
    help="Hexagon site-suitability scoring for candidate business locations.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from site_scorer.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    from site_scorer.utils.logging import configure_logging
    configure_logging(config.logging)


def _parse_weights(raw: Optional[str]) -> Optional[dict]:
    """Parse ``demand=30,risk=10`` into a dict; ``None`` when not given."""
    if not raw:
        return None
    weights: dict[str, float] = {}
    for part in raw.split(","):
        key, sep, value = part.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected name=value, got '{part}'.", param_hint="--weights")
        try:
            weights[key.strip()] = float(value)
        except ValueError:
            raise typer.BadParameter(f"Weight '{key}' is not a number.", param_hint="--weights")
    return weights


def _fmt_score(score: Optional[float]) -> str:
    return "  n/a" if score is None else f"{score:5.1f}"


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None, "--db-path", help="Override DB path from config."
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", help="Path to TOML config file."
    ),
) -> None:
    """Initialize the SQLite database and apply the schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    """
    from site_scorer.db.connection import get_connection
    from site_scorer.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None, "--config", help="Path to TOML config file (default: config/default.toml)."
    ),
    show_full: bool = typer.Option(
        False, "--full", help="Print full config including all fields."
    ),
) -> None:
    """Validate the configuration file and print parsed values."""
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Credentials:      {'yes' if config.auth.has_credentials else 'NO'}")
    typer.echo(f"  Top N:            {config.scoring.top_n}")
    typer.echo(f"  Max radius (m):   {config.scoring.max_radius_m:.0f}")
    typer.echo(f"  Max hexagons:     {config.scoring.max_hexagons}")
    typer.echo(f"  Run deadline (s): {config.scoring.run_deadline_s:.0f}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        dumped = config.model_dump()
        for secret in ("password", "api_key"):
            if dumped["auth"].get(secret):
                dumped["auth"][secret] = "***"
        typer.echo(json.dumps(dumped, indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("list-categories")
def list_categories_cmd() -> None:
    """Print the business-category presets."""
    from site_scorer.taxonomy.categories import list_categories

    typer.echo(f"{'slug':<12} {'side m':>7} {'risk':>5} {'max comp':>9} {'access m':>9}  name")
    for s in list_categories():
        typer.echo(
            f"{s.slug:<12} {s.side_length_m:>7.0f} {s.risk_ratio:>5.2f} "
            f"{s.max_competitors:>9d} {s.accessibility_threshold_m:>9.0f}  {s.display_name}"
        )


@app.command("hexagons")
def hexagons_cmd(
    lat: float = typer.Option(..., "--lat", help="Reference latitude."),
    lon: float = typer.Option(..., "--lon", help="Reference longitude."),
    radius: float = typer.Option(1000.0, "--radius", help="Catchment radius in meters."),
    side: Optional[float] = typer.Option(
        None, "--side", help="Hexagon side in meters (default: category preset)."
    ),
    category: Optional[str] = typer.Option(None, "--category", help="Category preset."),
    output: Optional[str] = typer.Option(
        None, "--output", help="Write the hexagons as GeoJSON to this path."
    ),
) -> None:
    """Tessellate a catchment without scoring it."""
    from site_scorer.geometry.hexgrid import GeometryInputError, generate_hexagons
    from site_scorer.reporting.export import export_to_json
    from site_scorer.taxonomy.categories import get_category_settings

    side_m = side or get_category_settings(category).side_length_m
    try:
        cells = generate_hexagons(lon, lat, radius, side_m)
    except GeometryInputError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"{len(cells)} hexagons (side {side_m:.0f} m, radius {radius:.0f} m)")
    if output:
        collection = {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "properties": {"hex_index": h.hex_index},
                    "geometry": {"type": "Polygon", "coordinates": [h.ring_as_lists()]},
                }
                for h in cells
            ],
        }
        path = export_to_json(collection, Path(output))
        typer.echo(f"[OK] Wrote {path}")


@app.command("run-analysis")
def run_analysis(
    lat: float = typer.Option(..., "--lat", help="Reference latitude."),
    lon: float = typer.Option(..., "--lon", help="Reference longitude."),
    radius: float = typer.Option(1000.0, "--radius", help="Catchment radius in meters."),
    category: str = typer.Option("default", "--category", help="Business category."),
    name: str = typer.Option("", "--name", help="Reference point label."),
    weights: Optional[str] = typer.Option(
        None, "--weights", help="Weight overrides, e.g. demand=30,risk=10."
    ),
    max_hexagons: Optional[int] = typer.Option(
        None, "--max-hexagons", help="Cap on scored hexagons."
    ),
    csv_path: Optional[str] = typer.Option(None, "--csv", help="Export all scores as CSV."),
    json_path: Optional[str] = typer.Option(
        None, "--json", help="Export the recommendations as JSON."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Score a catchment on all five dimensions and print the top recommendations."""
    from site_scorer.db.store import SQLiteResultStore
    from site_scorer.models.analysis import ReferencePoint
    from site_scorer.pipeline.analysis import AnalysisError, AnalysisInputError, AnalysisPipeline
    from site_scorer.reporting.export import write_recommendations_json, write_scores_csv

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    parsed_weights = _parse_weights(weights)

    store = SQLiteResultStore(
        db_path=db_path or config.database.db_path, wal_mode=config.database.wal_mode
    )
    pipeline = AnalysisPipeline(config, store)
    try:
        result = pipeline.run(
            {"name": name, "lat": lat, "lon": lon},
            radius_m=radius,
            category=category,
            weights=parsed_weights,
            max_hexagons=max_hexagons,
        )
    except AnalysisInputError as exc:
        typer.echo(f"[ERROR] Invalid request: {exc}", err=True)
        raise typer.Exit(code=2)
    except AnalysisError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    run = result.run
    typer.echo(
        f"Analysis {run.analysis_id} | {run.resolved_category} | "
        f"{run.hexagon_count} hexagons | status={run.status}"
    )
    for dim, err in result.module_errors.items():
        typer.echo(f"  [WARN] {dim}: {err}")
    typer.echo("")
    for rec in result.recommendations:
        typer.echo(f"  #{rec.rank}  score {rec.score:5.2f}  ({rec.lat:.6f}, {rec.lon:.6f})")
        typer.echo(f"      {rec.reasoning}")

    if csv_path:
        typer.echo(f"[OK] Scores CSV: {write_scores_csv(result.ranked, Path(csv_path))}")
    if json_path:
        path = write_recommendations_json(result.recommendations, Path(json_path), run)
        typer.echo(f"[OK] Recommendations JSON: {path}")

    if run.status == "failed":
        raise typer.Exit(code=1)


@app.command("show-analysis")
def show_analysis(
    analysis_id: int = typer.Argument(..., help="Analysis id to display."),
    all_scores: bool = typer.Option(False, "--all", help="List every scored hexagon."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Print a stored analysis and its recommendations."""
    from site_scorer.db.store import SQLiteResultStore
    from site_scorer.models.score import Dimension
    from site_scorer.ranking.ranker import rank

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    store = SQLiteResultStore(
        db_path=db_path or config.database.db_path, wal_mode=config.database.wal_mode
    )

    run = store.get_analysis(analysis_id)
    if run is None:
        typer.echo(f"[ERROR] No analysis with id {analysis_id}.", err=True)
        raise typer.Exit(code=1)

    point = run.reference_point
    typer.echo(f"Analysis {run.analysis_id} ({run.run_slug})")
    typer.echo(f"  Reference:  {point.name or '-'} ({point.lat:.6f}, {point.lon:.6f})")
    typer.echo(f"  Category:   {run.category} -> {run.resolved_category}")
    typer.echo(f"  Radius:     {run.radius_m:.0f} m | hexagons: {run.hexagon_count}")
    typer.echo(f"  Status:     {run.status}")
    if run.error_message:
        typer.echo(f"  Errors:     {run.error_message}")

    typer.echo("")
    for rec in store.get_recommendations(analysis_id):
        typer.echo(f"  #{rec.rank}  score {rec.score:5.2f}  hex {rec.hex_index}  {rec.reasoning}")

    if all_scores:
        typer.echo("")
        header = " ".join(f"{d.value[:6]:>6}" for d in Dimension)
        typer.echo(f"  {'hex':>5} {header}  final")
        for record in rank(store.get_hexagon_scores(analysis_id)):
            cells = " ".join(f"{_fmt_score(record.scores.get(d)):>6}" for d in Dimension)
            typer.echo(f"  {record.hex_index:>5} {cells}  {record.final_score:5.2f}")


if __name__ == "__main__":
    app()

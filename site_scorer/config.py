"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — ArcGIS credentials and env overrides (gitignored)
  4. Environment variables        — ``SITE_SCORER_*`` prefix, plus ``ARCGIS_*``

Entry point: ``load_config(config_path=None) -> AppConfig``

The scoring core itself never reads the environment. Provider URLs, retry
policy, weights and deadlines reach it as plain data through ``AppConfig``
sub-sections, so the engine can be driven with hand-built configs in tests.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from site_scorer.geometry.projection import crs_for_wkid

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite result store settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/site_scorer.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class ProvidersConfig(BaseModel):
    """Geodata provider endpoints and the shared call policy.

    Every provider call carries ``timeout_s`` and is retried up to
    ``max_retries`` times with a fixed ``retry_delay_s`` between attempts.
    """

    model_config = ConfigDict(frozen=True)

    timeout_s: float = 30.0
    max_retries: int = 2
    retry_delay_s: float = 0.25

    geoenrichment_url: str = (
        "https://geoenrich.arcgis.com/arcgis/rest/services/World/"
        "geoenrichmentserver/GeoEnrichment/enrich"
    )
    places_url: str = "https://places-api.arcgis.com/arcgis/rest/services/places-service/v1"
    flood_layer_url: str = (
        "https://gisdev.planmalaysia.gov.my/server/rest/services/Hosted/BANJIR/FeatureServer/0"
    )
    landslide_layer_url: str = (
        "https://scharms.planmalaysia.gov.my/arcgis/rest/services/iPLAN/Tanah_Runtuh/MapServer/0"
    )
    flood_layer_wkid: int = 3857
    landslide_layer_wkid: int = 3857
    landuse_layer_url: str = (
        "https://scharms.planmalaysia.gov.my/arcgis/rest/services/iPLAN/Guna_Tanah/MapServer/0"
    )
    facilities_layer_url: str = (
        "https://services6.arcgis.com/MpOjf90wsc96wTq1/ArcGIS/rest/services/"
        "Public_Facilities_WFL1/FeatureServer/0"
    )

    @field_validator("timeout_s", "retry_delay_s")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Provider timings must be >= 0, got {v}.")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if not 0 <= v <= 10:
            raise ValueError(f"max_retries must be in [0, 10], got {v}.")
        return v

    @field_validator("flood_layer_wkid", "landslide_layer_wkid")
    @classmethod
    def validate_wkid(cls, v: int) -> int:
        crs_for_wkid(v)
        return v


class AuthConfig(BaseModel):
    """ArcGIS credential settings.

    Credentials come from ``ARCGIS_USERNAME`` / ``ARCGIS_PASSWORD`` or a
    static ``ARCGIS_API_KEY``; they are never committed to TOML.
    """

    model_config = ConfigDict(frozen=True)

    token_url: str = "https://www.arcgis.com/sharing/rest/generateToken"
    referer: str = "https://www.arcgis.com"
    expiration_minutes: int = 120
    username: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) or bool(self.username and self.password)


class DefaultWeightsConfig(BaseModel):
    """Per-dimension weights applied when the caller supplies none."""

    model_config = ConfigDict(frozen=True)

    demand: float = 20.0
    competition: float = 20.0
    risk: float = 20.0
    zoning: float = 20.0
    accessibility: float = 20.0


class ScoringConfig(BaseModel):
    """Run-level scoring parameters."""

    model_config = ConfigDict(frozen=True)

    top_n: int = 3
    run_deadline_s: float = 900.0
    max_radius_m: float = 10_000.0
    max_hexagons: Optional[int] = 500
    # Overrides every category's request_delay_s when set.
    inter_request_delay_s: Optional[float] = None
    default_weights: DefaultWeightsConfig = DefaultWeightsConfig()

    @field_validator("top_n")
    @classmethod
    def validate_top_n(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"top_n must be >= 1, got {v}.")
        return v

    @field_validator("run_deadline_s", "max_radius_m")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Value must be > 0, got {v}.")
        return v

    @field_validator("inter_request_delay_s")
    @classmethod
    def validate_delay(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError(f"inter_request_delay_s must be >= 0, got {v}.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/site_scorer.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class ReportingConfig(BaseModel):
    """Where CSV / JSON exports land."""

    model_config = ConfigDict(frozen=True)

    output_dir: str = "data/outputs"


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env + env vars.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    providers: ProvidersConfig = ProvidersConfig()
    auth: AuthConfig = AuthConfig()
    scoring: ScoringConfig = ScoringConfig()
    logging: LoggingConfig = LoggingConfig()
    reporting: ReportingConfig = ReportingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply SITE_SCORER_* / ARCGIS_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variables to the raw config dict.

    Supported overrides:
      SITE_SCORER_DB_PATH         → raw["database"]["db_path"]
      SITE_SCORER_LOG_LEVEL       → raw["logging"]["level"]
      SITE_SCORER_DEBUG           → raw["debug"]
      SITE_SCORER_RUN_DEADLINE_S  → raw["scoring"]["run_deadline_s"]
      ARCGIS_USERNAME / ARCGIS_PASSWORD / ARCGIS_API_KEY → raw["auth"][...]
    """
    if db_path := os.environ.get("SITE_SCORER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("SITE_SCORER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("SITE_SCORER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    if deadline := os.environ.get("SITE_SCORER_RUN_DEADLINE_S"):
        raw.setdefault("scoring", {})["run_deadline_s"] = float(deadline)

    for env_name, key in (
        ("ARCGIS_USERNAME", "username"),
        ("ARCGIS_PASSWORD", "password"),
        ("ARCGIS_API_KEY", "api_key"),
    ):
        if value := os.environ.get(env_name):
            raw.setdefault("auth", {})[key] = value

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    scoring_raw = dict(raw.get("scoring", {}))
    weights_raw = scoring_raw.pop("default_weights", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        providers=ProvidersConfig(**raw.get("providers", {})),
        auth=AuthConfig(**raw.get("auth", {})),
        scoring=ScoringConfig(
            **scoring_raw,
            default_weights=DefaultWeightsConfig(**weights_raw),
        ),
        logging=LoggingConfig(**raw.get("logging", {})),
        reporting=ReportingConfig(**raw.get("reporting", {})),
        debug=raw.get("debug", False),
    )

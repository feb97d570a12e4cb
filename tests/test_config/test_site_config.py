"""
Tests for site_scorer/config.py.

What we test
------------
  - The shipped config/default.toml loads and validates.
  - Environment overrides (db path, deadline, ArcGIS credentials).
  - config/local.toml next to the config file is deep-merged on top.
  - Validation errors for bad values, including unknown layer wkids.
  - A missing config path raises FileNotFoundError.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from site_scorer.config import AppConfig, ProvidersConfig, ScoringConfig, load_config

_ENV_VARS = (
    "SITE_SCORER_DB_PATH", "SITE_SCORER_LOG_LEVEL", "SITE_SCORER_DEBUG",
    "SITE_SCORER_RUN_DEADLINE_S", "ARCGIS_USERNAME", "ARCGIS_PASSWORD", "ARCGIS_API_KEY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    def test_default_file_loads(self):
        cfg = load_config()
        assert isinstance(cfg, AppConfig)
        assert cfg.scoring.top_n == 3
        assert cfg.scoring.max_radius_m == 10_000.0
        assert cfg.scoring.default_weights.demand == 20.0
        assert cfg.providers.flood_layer_wkid == 3857
        assert cfg.providers.landslide_layer_wkid == 3857
        assert cfg.scoring.inter_request_delay_s is None

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SITE_SCORER_DB_PATH", "/tmp/x.db")
        monkeypatch.setenv("SITE_SCORER_RUN_DEADLINE_S", "60")
        monkeypatch.setenv("ARCGIS_API_KEY", "key-123")
        cfg = load_config()
        assert cfg.database.db_path == "/tmp/x.db"
        assert cfg.scoring.run_deadline_s == 60.0
        assert cfg.auth.api_key == "key-123"
        assert cfg.auth.has_credentials

    def test_local_toml_merged(self, tmp_path: Path):
        (tmp_path / "default.toml").write_text(
            "[scoring]\ntop_n = 3\n[scoring.default_weights]\ndemand = 20.0\n",
            encoding="utf-8",
        )
        (tmp_path / "local.toml").write_text(
            "[scoring]\ntop_n = 5\n[scoring.default_weights]\nrisk = 40.0\n",
            encoding="utf-8",
        )
        cfg = load_config(tmp_path / "default.toml")
        assert cfg.scoring.top_n == 5
        assert cfg.scoring.default_weights.demand == 20.0
        assert cfg.scoring.default_weights.risk == 40.0

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")


class TestValidation:
    def test_top_n_positive(self):
        with pytest.raises(ValidationError):
            ScoringConfig(top_n=0)

    def test_deadline_positive(self):
        with pytest.raises(ValidationError):
            ScoringConfig(run_deadline_s=0)

    def test_negative_retries(self):
        with pytest.raises(ValidationError):
            ProvidersConfig(max_retries=-1)

    def test_negative_delay_override(self):
        with pytest.raises(ValidationError):
            ScoringConfig(inter_request_delay_s=-1.0)

    def test_hazard_layers_take_separate_wkids(self):
        cfg = ProvidersConfig(flood_layer_wkid=3375, landslide_layer_wkid=102100)
        assert (cfg.flood_layer_wkid, cfg.landslide_layer_wkid) == (3375, 102100)

    def test_unknown_wkid_rejected(self):
        with pytest.raises(ValidationError, match="wkid=999999"):
            ProvidersConfig(flood_layer_wkid=999999)

    def test_no_credentials_by_default(self):
        assert not AppConfig().auth.has_credentials

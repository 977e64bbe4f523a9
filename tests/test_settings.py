"""TOML config loading and profile overlay."""

from decimal import Decimal

import pytest

from parimarket.config import Settings, get_settings, load_config


def test_profile_overlays_default(tmp_path):
    (tmp_path / "default.toml").write_text(
        '[storage]\ndb_path = "data/a.duckdb"\n[scheduler]\ninterval_sec = 60\nmax_concurrency = 4\n'
    )
    (tmp_path / "dev.toml").write_text("[scheduler]\ninterval_sec = 5\n")
    raw = load_config("dev", tmp_path)
    assert raw["scheduler"] == {"interval_sec": 5, "max_concurrency": 4}
    settings = get_settings("dev", tmp_path)
    assert settings.db_path == "data/a.duckdb"
    assert settings.scheduler_interval_sec == 5.0


def test_missing_config_dir_gives_defaults(tmp_path):
    settings = get_settings(None, tmp_path)
    assert settings.lock_timeout_sec == 10.0
    assert settings.empty_winner_policy == "forfeit"
    assert settings.min_stake == Decimal("0.01")
    assert settings.kline_intervals == ["1m", "5m", "15m", "30m", "1h", "4h", "1d", "1w"]
    assert settings.max_oracle_attempts == 30
    assert settings.oracle_base_url == "https://api.dexscreener.com"


def test_invalid_policy():
    with pytest.raises(ValueError):
        Settings(market={"empty_winner_policy": "house"}).empty_winner_policy


def test_repo_default_config_loads():
    settings = get_settings()
    assert settings.refund_unmatched is True
    assert settings.logging_format in ("console", "json")

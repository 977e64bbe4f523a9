"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

ALL_KLINE_INTERVALS = ["1m", "5m", "15m", "30m", "1h", "4h", "1d", "1w"]


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        market: dict[str, Any] | None = None,
        scheduler: dict[str, Any] | None = None,
        oracle: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.market = market or {}
        self.scheduler = scheduler or {}
        self.oracle = oracle or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            market=raw.get("market"),
            scheduler=raw.get("scheduler"),
            oracle=raw.get("oracle"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/parimarket.duckdb")

    @property
    def lock_timeout_sec(self) -> float:
        return float(self.market.get("lock_timeout_sec", 10.0))

    @property
    def empty_winner_policy(self) -> str:
        policy = str(self.market.get("empty_winner_policy", "forfeit")).lower()
        if policy not in ("forfeit", "refund"):
            raise ValueError(f"market.empty_winner_policy must be 'forfeit' or 'refund', got {policy!r}")
        return policy

    @property
    def kline_intervals(self) -> list[str]:
        return list(self.market.get("kline_intervals") or ALL_KLINE_INTERVALS)

    @property
    def min_stake(self) -> Decimal:
        return Decimal(str(self.market.get("min_stake", "0.01")))

    @property
    def scheduler_enabled(self) -> bool:
        return bool(self.scheduler.get("enabled", True))

    @property
    def scheduler_interval_sec(self) -> float:
        return float(self.scheduler.get("interval_sec", 60))

    @property
    def settle_timeout_sec(self) -> float:
        return float(self.scheduler.get("settle_timeout_sec", 30.0))

    @property
    def max_oracle_attempts(self) -> int:
        return int(self.scheduler.get("max_oracle_attempts", 30))

    @property
    def scheduler_max_concurrency(self) -> int:
        return max(1, int(self.scheduler.get("max_concurrency", 4)))

    @property
    def refund_unmatched(self) -> bool:
        return bool(self.scheduler.get("refund_unmatched", True))

    @property
    def oracle_base_url(self) -> str:
        return self.oracle.get("base_url", "https://api.dexscreener.com")

    @property
    def oracle_timeout_sec(self) -> float:
        return float(self.oracle.get("timeout_sec", 10.0))

    @property
    def oracle_default_chain(self) -> str:
        return self.oracle.get("default_chain", "solana")

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

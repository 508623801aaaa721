"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``     : committed static defaults
  2. ``config/local.toml``       : optional local overrides (gitignored)
  3. ``.env``                    : local secrets and env overrides (gitignored)
  4. Environment variables       : ``METRO_INDUCTION_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The CLI and every pipeline stage receive an ``AppConfig`` instance. The
scoring engine itself never reads configuration; callers turn
``ScoringConfig`` defaults into an explicit ``ScoringParameters`` object.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/metro_induction.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class DataConfig(BaseModel):
    """Filesystem paths for seed data and generated outputs."""

    model_config = ConfigDict(frozen=True)

    fleet_seed_file: str = "config/fleet/sample_fleet.json"
    processed_dir: str = "data/processed"
    output_dir: str = "data/outputs/induction"


class ScoringConfig(BaseModel):
    """Default penalties and decision thresholds for the induction scorer.

    The penalties are only fallbacks: values stored in the
    ``optimization_params`` table take precedence when present.
    """

    model_config = ConfigDict(frozen=True)

    penalty_expiring_certificate: int = 50
    penalty_high_priority_jobs: int = 30
    maintenance_below: int = 50    # score < this → maintenance
    standby_below: int = 70        # score < this → standby, else revenue_service

    @model_validator(mode="after")
    def validate_thresholds(self) -> "ScoringConfig":
        if self.maintenance_below > self.standby_below:
            raise ValueError(
                f"maintenance_below ({self.maintenance_below}) must be <= "
                f"standby_below ({self.standby_below})."
            )
        return self


class TuningConfig(BaseModel):
    """Coefficients for the penalty auto-tuner."""

    model_config = ConfigDict(frozen=True)

    lookback_days: int = 14
    expiry_horizon_hours: int = 48
    penalty_cap: int = 80
    high_priority_base: int = 20
    high_priority_per_job: int = 10
    expiring_certificate_base: int = 40
    expiring_certificate_weight: int = 40

    @field_validator("lookback_days", "expiry_horizon_hours")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/metro_induction.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration: the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env + environment.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    data: DataConfig = DataConfig()
    scoring: ScoringConfig = ScoringConfig()
    tuning: TuningConfig = TuningConfig()
    logging: LoggingConfig = LoggingConfig()
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
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply METRO_INDUCTION_* environment variable overrides
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
    """Apply METRO_INDUCTION_* env vars to the raw config dict.

    Supported overrides:
      METRO_INDUCTION_DB_PATH    → raw["database"]["db_path"]
      METRO_INDUCTION_LOG_LEVEL  → raw["logging"]["level"]
      METRO_INDUCTION_DEBUG      → raw["debug"]
    """
    if db_path := os.environ.get("METRO_INDUCTION_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("METRO_INDUCTION_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("METRO_INDUCTION_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        data=DataConfig(**raw.get("data", {})),
        scoring=ScoringConfig(**raw.get("scoring", {})),
        tuning=TuningConfig(**raw.get("tuning", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", False),
    )

"""
Application settings (Pydantic).

Settings are loaded from `src/tourrewards/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `TOURREWARDS_CONFIG_PATH` (replaces the packaged defaults)
- environment variables (e.g., `TOURREWARDS_PROXIMITY_BUFFER_MILES`)

Design rule:
- Tuning knobs (buffer, cell size, pool size) live in YAML, not hard-coded in the engine.
"""

from __future__ import annotations

import math
import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any
from tourrewards.core.env import load_dotenv_if_present

import yaml
from pydantic import BaseModel, Field, field_validator


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `tourrewards.config`."""
    text = resources.files("tourrewards.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "TourRewards"
    log_level: str = "INFO"


class RewardSettings(BaseModel):
    default_proximity_buffer_miles: float = Field(10, ge=0)
    attraction_proximity_range_miles: float = Field(200, ge=0)
    nearby_attractions_limit: int = Field(5, ge=1)
    # None means 2x the CPU count.
    worker_count: int | None = Field(default=None, ge=1)
    # None means wait for both phases without a deadline.
    join_timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("default_proximity_buffer_miles", "attraction_proximity_range_miles")
    @classmethod
    def _reject_nan(cls, v: float) -> float:
        if math.isnan(v):
            raise ValueError("must be a number")
        return v


class IndexSettings(BaseModel):
    cell_size_deg: float = Field(0.01, gt=0, le=180)
    distance_cache_size: int = Field(100_000, ge=0)


class RewardPointsProviderSettings(BaseModel):
    # None selects the local hashed provider instead of the HTTP one.
    base_url: str | None = None
    path_template: str = "/attractions/{attraction_id}/users/{user_id}/points"
    timeout_seconds: float = 15
    simulated_latency_seconds: float = Field(0, ge=0)


class ProviderSettings(BaseModel):
    catalog_path: str = "data/catalogs/attractions.json"
    reward_points: RewardPointsProviderSettings = Field(default_factory=RewardPointsProviderSettings)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    rewards: RewardSettings = Field(default_factory=RewardSettings)
    index: IndexSettings = Field(default_factory=IndexSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("TOURREWARDS_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    buffer_miles = os.getenv("TOURREWARDS_PROXIMITY_BUFFER_MILES")
    if buffer_miles:
        data.setdefault("rewards", {})["default_proximity_buffer_miles"] = buffer_miles

    catalog_path = os.getenv("TOURREWARDS_CATALOG_PATH")
    if catalog_path:
        data.setdefault("providers", {})["catalog_path"] = catalog_path

    points_url = os.getenv("TOURREWARDS_REWARD_POINTS_URL")
    if points_url:
        data.setdefault("providers", {}).setdefault("reward_points", {})["base_url"] = points_url

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("TOURREWARDS_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")

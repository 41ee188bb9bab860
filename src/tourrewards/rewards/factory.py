"""
Settings-driven wiring for `RewardEngine`.

Callers (a web layer, a batch job, tests) either inject their own providers or
let this module build them from settings:
- location provider: the JSON catalog at `providers.catalog_path`
- reward-points provider: HTTP when `providers.reward_points.base_url` is set,
  otherwise the deterministic hashed provider
"""

from __future__ import annotations

from tourrewards.config.settings import Settings, get_settings
from tourrewards.providers.catalog import JsonCatalogProvider, LocationProvider
from tourrewards.providers.reward_points import (
    HashedRewardPointsProvider,
    HttpRewardPointsProvider,
    RewardPointsProvider,
)
from tourrewards.rewards.engine import RewardEngine


def build_reward_points_provider(settings: Settings) -> RewardPointsProvider:
    cfg = settings.providers.reward_points
    if cfg.base_url:
        return HttpRewardPointsProvider(cfg)
    return HashedRewardPointsProvider(simulated_latency_seconds=cfg.simulated_latency_seconds)


def build_engine(
    settings: Settings | None = None,
    *,
    location_provider: LocationProvider | None = None,
    reward_points_provider: RewardPointsProvider | None = None,
) -> RewardEngine:
    """Build a `RewardEngine`, creating any provider the caller did not inject."""
    settings = settings or get_settings()
    if location_provider is None:
        location_provider = JsonCatalogProvider(settings.providers.catalog_path)
    if reward_points_provider is None:
        reward_points_provider = build_reward_points_provider(settings)
    return RewardEngine(location_provider, reward_points_provider, settings=settings)
